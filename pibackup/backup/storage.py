"""
Blob stores for backup archives.

Supports:
- S3Storage: Objects in an AWS S3 bucket
- LocalStorage: Objects as files under a local directory (NAS, USB disk)

Both expose the same put/get/list_objects interface keyed by snapshot key.
"""

import os
import shutil
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import BinaryIO, Dict, List, Any, Optional

import boto3
from botocore.exceptions import ClientError, BotoCoreError


logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 100 * 1024 * 1024  # 100MB
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024  # 10MB
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class BlobNotFoundError(StorageError):
    """Raised when a requested object does not exist."""
    pass


def _client_error_code(e: ClientError) -> str:
    return e.response.get('Error', {}).get('Code', 'Unknown')


class S3Storage:
    """
    Blob store backed by an AWS S3 bucket.
    """

    def __init__(self, bucket_name: str, region: str = 'us-east-1',
                 access_key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Args:
            bucket_name: S3 bucket name
            region: AWS region (default: us-east-1)
            access_key: AWS access key ID (default credential chain if None)
            secret_key: AWS secret access key
        """
        self.bucket_name = bucket_name
        self.region = region

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region
            )
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Failed to initialize S3 client: {e}") from e

    def describe(self, key: str) -> str:
        return f"s3://{self.bucket_name}/{key}"

    def put(self, key: str, local_path: str):
        """
        Upload a local file to S3.

        Args:
            key: Object key
            local_path: Path to local archive file

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        try:
            file_size = os.path.getsize(local_path)

            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(local_path, key)
            else:
                self._simple_upload(local_path, key)

        except ClientError as e:
            raise StorageError(
                f"uploading to {self.describe(key)} failed ({_client_error_code(e)}): {e}"
            ) from e
        except (BotoCoreError, OSError) as e:
            raise StorageError(f"uploading to {self.describe(key)} failed: {e}") from e

    def _simple_upload(self, local_path: str, key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=f
            )

    def _multipart_upload(self, local_path: str, key: str):
        """
        Upload large file using multipart upload.

        Args:
            local_path: Path to local file
            key: S3 object key
        """
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=key
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except BaseException:
            # Abort multipart upload on any error
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(f"Failed to abort multipart upload {upload_id}: {abort_error}")
            raise

    def get(self, key: str, fileobj: BinaryIO):
        """
        Download an object and write its bytes to fileobj.

        Args:
            key: Object key
            fileobj: Writable binary file object

        Raises:
            BlobNotFoundError: If the object does not exist
            StorageError: If the download fails
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            body = response['Body']
            try:
                for chunk in body.iter_chunks(DOWNLOAD_CHUNK_SIZE):
                    fileobj.write(chunk)
            finally:
                body.close()

        except ClientError as e:
            error_code = _client_error_code(e)
            if error_code in ('NoSuchKey', '404'):
                raise BlobNotFoundError(f"{self.describe(key)} not found") from e
            raise StorageError(
                f"downloading {self.describe(key)} failed ({error_code}): {e}"
            ) from e
        except (BotoCoreError, OSError) as e:
            raise StorageError(f"downloading {self.describe(key)} failed: {e}") from e

    def list_objects(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List objects in S3 with given prefix.

        Args:
            prefix: S3 key prefix to filter by

        Returns:
            List of dicts with 'Key', 'LastModified', and 'Size' keys

        Raises:
            StorageError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get('Contents', []):
                    objects.append({
                        'Key': obj['Key'],
                        'LastModified': obj['LastModified'],
                        'Size': obj['Size']
                    })

            return objects

        except ClientError as e:
            raise StorageError(f"S3 list failed ({_client_error_code(e)}): {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to list S3 objects: {e}") from e


class LocalStorage:
    """
    Blob store backed by a local directory.

    Object keys map to relative paths below base_path:
    {base_path}/{hostname}/{slug}/{timestamp}.tar.gz
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        The base directory is created by the first put().

        Args:
            base_path: Base directory for stored archives
        """
        self.base_path = Path(base_path)

    def describe(self, key: str) -> str:
        return str(self._path_for(key))

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        base = self.base_path.resolve()
        if path != base and base not in path.parents:
            raise StorageError(f"Invalid object key: {key}")
        return path

    def put(self, key: str, local_path: str):
        """
        Copy a local file into storage.

        The copy is written next to its final name and renamed into place.

        Raises:
            StorageError: If storage fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        dest_path = self._path_for(key)
        partial_path = dest_path.with_name(dest_path.name + '.partial')

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, partial_path)
            os.replace(partial_path, dest_path)
        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {dest_path}: {e}") from e
        except OSError as e:
            if partial_path.exists():
                partial_path.unlink()
            raise StorageError(f"Failed to store locally: {e}") from e

    def get(self, key: str, fileobj: BinaryIO):
        """
        Write a stored object's bytes to fileobj.

        Raises:
            BlobNotFoundError: If the object does not exist
            StorageError: If reading fails
        """
        path = self._path_for(key)

        try:
            with open(path, 'rb') as f:
                shutil.copyfileobj(f, fileobj)
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"{path} not found") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def list_objects(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List stored objects whose key starts with prefix.

        Returns:
            List of dicts with 'Key', 'LastModified', and 'Size' keys

        Raises:
            StorageError: If listing fails
        """
        if not self.base_path.is_dir():
            return []

        try:
            objects = []

            for file_path in self.base_path.rglob('*'):
                if not file_path.is_file() or file_path.name.endswith('.partial'):
                    continue

                key = file_path.relative_to(self.base_path).as_posix()
                if not key.startswith(prefix):
                    continue

                st = file_path.stat()
                objects.append({
                    'Key': key,
                    'LastModified': datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                    'Size': st.st_size
                })

            return objects

        except OSError as e:
            raise StorageError(f"Failed to list local files: {e}") from e


def create_storage(config, access_key: Optional[str] = None, secret_key: Optional[str] = None):
    """
    Factory function to create the configured blob store.

    Args:
        config: Config instance
        access_key: AWS access key ID (S3 only)
        secret_key: AWS secret access key (S3 only)

    Returns:
        S3Storage or LocalStorage instance

    Raises:
        ValueError: If the configured storage type is invalid
    """
    if config.storage == 's3':
        return S3Storage(
            bucket_name=config.bucket,
            region=config.region,
            access_key=access_key,
            secret_key=secret_key
        )
    elif config.storage == 'local':
        return LocalStorage(config.local_path)
    else:
        raise ValueError(f"Invalid storage type: {config.storage}")
