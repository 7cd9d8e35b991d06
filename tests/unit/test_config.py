"""
Unit tests for configuration loading (pibackup/config.py).
"""

import os

import pytest
import yaml

from pibackup.config import Config, ConfigError, check_credentials


def write_config(tmp_path, data):
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump(data))
    return str(path)


S3_CONFIG = {
    'hostname': 'cherry',
    'bucket': 'my-backups',
    'region': 'eu-west-1',
    'directories': ['/opt/homeassistant/config', '/etc/pihole'],
}


class TestConfigFromFile:
    """Test Config.from_file."""

    def test_load_s3_config(self, tmp_path):
        config = Config.from_file(write_config(tmp_path, S3_CONFIG))

        assert config.hostname == 'cherry'
        assert config.bucket == 'my-backups'
        assert config.region == 'eu-west-1'
        assert config.storage == 's3'
        assert config.directories == ['/opt/homeassistant/config', '/etc/pihole']
        assert config.log_file is None
        assert config.requires_credentials is True

    def test_checksums_path_defaults_next_to_config(self, tmp_path):
        config = Config.from_file(write_config(tmp_path, S3_CONFIG))

        assert config.checksums_path == os.path.join(str(tmp_path), 'checksums.json')

    def test_checksums_path_override(self, tmp_path):
        data = dict(S3_CONFIG, checksums_path='/var/lib/pi-backup/checksums.json')

        config = Config.from_file(write_config(tmp_path, data))

        assert config.checksums_path == '/var/lib/pi-backup/checksums.json'

    def test_load_local_config(self, config_file, tmp_path):
        config = Config.from_file(str(config_file))

        assert config.storage == 'local'
        assert config.local_path == str(tmp_path / 'store')
        assert config.bucket is None
        assert config.requires_credentials is False

    @pytest.mark.parametrize("field,message", [
        ('hostname', 'hostname is required'),
        ('bucket', 'bucket is required'),
        ('region', 'region is required'),
        ('directories', 'at least one directory is required'),
    ])
    def test_missing_field(self, tmp_path, field, message):
        data = dict(S3_CONFIG)
        del data[field]

        with pytest.raises(ConfigError, match=message):
            Config.from_file(write_config(tmp_path, data))

    def test_empty_directories(self, tmp_path):
        data = dict(S3_CONFIG, directories=[])

        with pytest.raises(ConfigError, match='at least one directory'):
            Config.from_file(write_config(tmp_path, data))

    @pytest.mark.parametrize("directories", [
        '/opt/data',
        ['/opt/data', 42],
        ['/opt/data', ''],
    ])
    def test_invalid_directories(self, tmp_path, directories):
        data = dict(S3_CONFIG, directories=directories)

        with pytest.raises(ConfigError, match='must be a list of paths'):
            Config.from_file(write_config(tmp_path, data))

    def test_local_storage_requires_path(self, tmp_path):
        data = {'hostname': 'cherry', 'storage': 'local', 'directories': ['/data']}

        with pytest.raises(ConfigError, match='local_path is required'):
            Config.from_file(write_config(tmp_path, data))

    def test_invalid_storage(self, tmp_path):
        data = dict(S3_CONFIG, storage='ftp')

        with pytest.raises(ConfigError, match="invalid storage 'ftp'"):
            Config.from_file(write_config(tmp_path, data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match='reading config'):
            Config.from_file(str(tmp_path / 'missing.yaml'))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('hostname: cherry\ndirectories: [unclosed\n')

        with pytest.raises(ConfigError, match='parsing config'):
            Config.from_file(str(path))

    def test_top_level_not_mapping(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('- just\n- a list\n')

        with pytest.raises(ConfigError, match='expected a mapping'):
            Config.from_file(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text('')

        with pytest.raises(ConfigError, match='hostname is required'):
            Config.from_file(str(path))


class TestCheckCredentials:
    """Test check_credentials."""

    def test_present(self):
        environ = {'AWS_ACCESS_KEY_ID': 'AKIA', 'AWS_SECRET_ACCESS_KEY': 'secret'}

        assert check_credentials(environ) == ('AKIA', 'secret')

    @pytest.mark.parametrize("environ", [
        {},
        {'AWS_ACCESS_KEY_ID': 'AKIA'},
        {'AWS_SECRET_ACCESS_KEY': 'secret'},
        {'AWS_ACCESS_KEY_ID': '', 'AWS_SECRET_ACCESS_KEY': 'secret'},
    ])
    def test_missing(self, environ):
        with pytest.raises(ConfigError, match='AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set'):
            check_credentials(environ)

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'from-env')
        monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'also-from-env')

        assert check_credentials() == ('from-env', 'also-from-env')
