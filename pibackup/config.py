"""
Configuration loading for pi-backup.

Configuration is a YAML file listing the host name, the storage target and
the directories to back up:

    hostname: cherry
    bucket: my-backups
    region: eu-west-1
    directories:
      - /opt/homeassistant/config
"""

import os
from typing import List, Optional

import yaml


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""
    pass


class Config:
    """Backup configuration"""

    DEFAULT_CONFIG_PATH = '/opt/pi-backup/config.yaml'
    CONFIG_PATH_ENV = 'PI_BACKUP_CONFIG'

    STORAGE_BACKENDS = ('s3', 'local')

    # Credentials for S3 storage are only read from the environment
    CREDENTIAL_ENV_VARS = ('AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY')

    def __init__(
        self,
        hostname: str,
        directories: List[str],
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        storage: str = 's3',
        local_path: Optional[str] = None,
        checksums_path: Optional[str] = None,
        log_file: Optional[str] = None
    ):
        self.hostname = hostname
        self.directories = directories
        self.bucket = bucket
        self.region = region
        self.storage = storage
        self.local_path = local_path
        self.checksums_path = checksums_path
        self.log_file = log_file

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """
        Load and validate a YAML configuration file.

        The digest map defaults to checksums.json next to the config file.

        Args:
            path: Path to the YAML file

        Returns:
            Validated Config instance

        Raises:
            ConfigError: If the file cannot be read or a required field is missing
        """
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"reading config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"parsing config {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"parsing config {path}: expected a mapping at top level")

        config = cls(
            hostname=data.get('hostname'),
            directories=data.get('directories'),
            bucket=data.get('bucket'),
            region=data.get('region'),
            storage=data.get('storage') or 's3',
            local_path=data.get('local_path'),
            checksums_path=data.get('checksums_path'),
            log_file=data.get('log_file')
        )

        if not config.checksums_path:
            config.checksums_path = os.path.join(
                os.path.dirname(os.path.abspath(path)), 'checksums.json'
            )

        config.validate()
        return config

    def validate(self):
        """
        Check that all required fields are present.

        Raises:
            ConfigError: Naming the first missing or invalid field
        """
        if not self.hostname:
            raise ConfigError("config: hostname is required")

        if self.storage not in self.STORAGE_BACKENDS:
            raise ConfigError(
                f"config: invalid storage {self.storage!r}. "
                f"Valid options: {list(self.STORAGE_BACKENDS)}"
            )

        if self.storage == 's3':
            if not self.bucket:
                raise ConfigError("config: bucket is required")
            if not self.region:
                raise ConfigError("config: region is required")
        elif not self.local_path:
            raise ConfigError("config: local_path is required for local storage")

        if not self.directories:
            raise ConfigError("config: at least one directory is required")
        if not isinstance(self.directories, list) or not all(
            isinstance(d, str) and d for d in self.directories
        ):
            raise ConfigError("config: directories must be a list of paths")

    @property
    def requires_credentials(self) -> bool:
        return self.storage == 's3'


def check_credentials(environ=None):
    """
    Verify that blob store credentials are present in the environment.

    Args:
        environ: Mapping to check (defaults to os.environ)

    Returns:
        Tuple of (access_key, secret_key)

    Raises:
        ConfigError: If either variable is unset or empty
    """
    if environ is None:
        environ = os.environ

    access_key, secret_key = (environ.get(name) for name in Config.CREDENTIAL_ENV_VARS)
    if not access_key or not secret_key:
        raise ConfigError(
            f"{' and '.join(Config.CREDENTIAL_ENV_VARS)} must be set"
        )

    return access_key, secret_key
