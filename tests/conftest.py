"""
Shared pytest fixtures for pi-backup tests.

This module provides fixtures for:
- A sample directory tree to back up (files, nested dirs, symlinks)
- Configuration objects and config files
- Local and mocked S3 blob stores
- Hand-built archives for extraction edge cases
"""

import io
import os
import tarfile

import pytest
import boto3
import yaml
from moto import mock_aws

from pibackup.config import Config
from pibackup.backup.storage import LocalStorage, S3Storage


@pytest.fixture
def backup_tree(tmp_path):
    """
    Create a directory tree to back up.

    Creates under src/config:
    - configuration.yaml
    - secrets.yaml
    - blob.bin (binary content)
    - nested/automations.yaml
    - empty/ (empty directory)
    - current -> configuration.yaml (symlink)
    - outside -> /etc/hostname (absolute symlink, never followed)
    """
    root = tmp_path / 'src' / 'config'
    root.mkdir(parents=True)

    (root / 'configuration.yaml').write_text('homeassistant:\n  name: Home\n')
    (root / 'secrets.yaml').write_text('api_key: hunter2\n')
    (root / 'blob.bin').write_bytes(bytes(range(256)) * 4)

    nested_dir = root / 'nested'
    nested_dir.mkdir()
    (nested_dir / 'automations.yaml').write_text('- alias: lights\n')

    (root / 'empty').mkdir()

    os.symlink('configuration.yaml', root / 'current')
    os.symlink('/etc/hostname', root / 'outside')

    return root


@pytest.fixture
def local_storage(tmp_path):
    """LocalStorage rooted in a temporary directory."""
    return LocalStorage(str(tmp_path / 'store'))


@pytest.fixture
def checksums_path(tmp_path):
    return str(tmp_path / 'state' / 'checksums.json')


@pytest.fixture
def backup_config(tmp_path, backup_tree, checksums_path):
    """
    Configuration backing up backup_tree to local storage.
    """
    return Config(
        hostname='cherry',
        directories=[str(backup_tree)],
        storage='local',
        local_path=str(tmp_path / 'store'),
        checksums_path=checksums_path
    )


@pytest.fixture
def config_file(tmp_path, backup_tree):
    """
    Write a YAML config file for local storage and return its path.
    """
    path = tmp_path / 'etc' / 'config.yaml'
    path.parent.mkdir()
    path.write_text(yaml.safe_dump({
        'hostname': 'cherry',
        'storage': 'local',
        'local_path': str(tmp_path / 'store'),
        'directories': [str(backup_tree)]
    }))
    return path


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')

        yield s3


@pytest.fixture
def s3_storage(mock_s3):
    """S3Storage pointed at the mocked test bucket."""
    return S3Storage(
        bucket_name='test-bucket',
        region='us-east-1',
        access_key='test_access_key',
        secret_key='test_secret_key'
    )


@pytest.fixture
def make_archive():
    """
    Build an in-memory tar.gz from (name, type, data, linkname) tuples.

    Lets tests produce archives our own writer never would, e.g. entries
    with absolute paths or ".." segments.
    """
    def _make(entries):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode='w:gz') as tar:
            for name, entry_type, data, linkname in entries:
                info = tarfile.TarInfo(name)
                info.type = entry_type
                info.mode = 0o755 if entry_type == tarfile.DIRTYPE else 0o644
                if linkname:
                    info.linkname = linkname
                if data is not None:
                    info.size = len(data)
                    tar.addfile(info, io.BytesIO(data))
                else:
                    tar.addfile(info)
        buf.seek(0)
        return buf

    return _make
