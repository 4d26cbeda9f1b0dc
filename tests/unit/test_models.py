"""
Unit tests for models
"""

import pytest

from myrepcdc.exceptions import ConfigurationError, FilterError
from myrepcdc.models.config import (
    DatabaseConfig, SessionOptions, FilterSpec, CDCConfig, split_start_options,
)
from myrepcdc.models.events import (
    EventHeader, ColumnSchema, TableSchemaEntry, TableMapEvent, UpdateRowsEvent, ReplicationCursor,
)

from conftest import column_row


class TestDatabaseConfig:
    """Test DatabaseConfig model"""

    def test_valid_config(self):
        """Test valid database configuration"""
        config = DatabaseConfig(host="localhost", port=3306, user="repl", password="secret")

        assert config.host == "localhost"
        assert config.charset == "utf8mb4"

    def test_missing_host(self):
        """Test host is required"""
        with pytest.raises(ConfigurationError, match="Host is required"):
            DatabaseConfig(host="", user="repl")

    def test_missing_user(self):
        """Test user is required"""
        with pytest.raises(ConfigurationError, match="User is required"):
            DatabaseConfig(host="localhost", user="")

    def test_invalid_port(self):
        """Test port range"""
        with pytest.raises(ConfigurationError, match="Port must be between"):
            DatabaseConfig(host="localhost", port=70000, user="repl")

    def test_connection_params(self):
        """Test pymysql parameters"""
        params = DatabaseConfig(host="db", user="repl", database="app").to_connection_params()

        assert params['autocommit'] is True
        assert params['database'] == "app"
        assert 'database' not in DatabaseConfig(host="db", user="repl").to_connection_params()

    def test_from_dict_rejects_unknown_keys(self):
        """Test unknown connection options are rejected"""
        with pytest.raises(ConfigurationError, match="Unknown database options"):
            DatabaseConfig.from_dict({'host': 'db', 'user': 'repl', 'pool_size': 5})


class TestSessionOptions:
    """Test SessionOptions model"""

    def test_defaults(self):
        """Test default start cursor"""
        options = SessionOptions(server_id=1)

        assert options.start_log_file == ""
        assert options.start_position == 4
        assert options.cache_interval == 0

    def test_invalid_server_id(self):
        """Test server id must be positive"""
        with pytest.raises(ConfigurationError):
            SessionOptions(server_id=0)

    def test_invalid_position(self):
        """Test position must be non-negative"""
        with pytest.raises(ConfigurationError):
            SessionOptions(server_id=1, position=-1)

    def test_with_start(self):
        """Test replacing the start cursor keeps other options"""
        options = SessionOptions(server_id=5, cache_interval=3)

        moved = options.with_start("mysql-bin.000009", 77)

        assert (moved.start_log_file, moved.start_position) == ("mysql-bin.000009", 77)
        assert moved.server_id == 5
        assert moved.cache_interval == 3
        assert options.filename is None


class TestSplitStartOptions:
    """Test flat start() options"""

    def test_split(self):
        """Test session options and filters are separated"""
        options, filters = split_start_options({
            'server_id': 10,
            'position': 120,
            'include_events': ['tablemap', 'writerows'],
            'exclude_schema': {'mysql': True},
        })

        assert options.server_id == 10
        assert options.position == 120
        assert filters.include_events == frozenset(['tablemap', 'writerows'])
        assert filters.exclude_schema['mysql'] is True
        assert filters.include_schema is None

    def test_none_options(self):
        """Test no options gives defaults"""
        options, filters = split_start_options(None)

        assert options == SessionOptions()
        assert filters == FilterSpec()

    def test_unknown_option(self):
        """Test unknown keys are rejected"""
        with pytest.raises(ConfigurationError, match="Unknown replication options"):
            split_start_options({'server_id': 1, 'blocking': True})

    def test_filter_spec_is_immutable(self):
        """Test schema rules cannot be changed after configuration"""
        _, filters = split_start_options({'include_schema': {'db1': ['t1']}})

        with pytest.raises(TypeError):
            filters.include_schema['db2'] = True

    def test_invalid_events_value(self):
        """Test event lists must be iterable names"""
        with pytest.raises(FilterError):
            split_start_options({'include_events': 5})


class TestCDCConfig:
    """Test CDCConfig model"""

    @pytest.fixture
    def config_data(self):
        return {
            'database': {'host': 'localhost', 'user': 'repl', 'password': 'secret'},
            'session': {'server_id': 100, 'filename': 'mysql-bin.000001', 'position': 4, 'cache_interval': 5},
            'filters': {'include_schema': {'db1': ['t1', 't2']}, 'exclude_events': ['query']},
            'logging': {'level': 'DEBUG', 'format': 'console'},
        }

    def test_from_dict(self, config_data):
        """Test configuration from dictionary"""
        config = CDCConfig.from_dict(config_data)

        assert config.database.host == "localhost"
        assert config.session.server_id == 100
        assert config.filters.exclude_events == frozenset(['query'])
        assert config.logging['level'] == "DEBUG"

    def test_server_id_required(self, config_data):
        """Test session.server_id is required"""
        del config_data['session']['server_id']

        with pytest.raises(ConfigurationError, match="server_id"):
            CDCConfig.from_dict(config_data)

    def test_database_required(self, config_data):
        """Test database section is required"""
        del config_data['database']

        with pytest.raises(ConfigurationError, match="'database' section"):
            CDCConfig.from_dict(config_data)

    def test_unknown_filter_key(self, config_data):
        """Test unknown filter keys are rejected"""
        config_data['filters']['include_tables'] = ['t1']

        with pytest.raises(ConfigurationError, match="Unknown filter options"):
            CDCConfig.from_dict(config_data)

    def test_start_options_round_trip(self, config_data):
        """Test flattened options configure the same session"""
        config = CDCConfig.from_dict(config_data)

        options, filters = split_start_options(config.start_options())

        assert options == config.session
        assert filters.include_schema['db1'] == frozenset(['t1', 't2'])
        assert filters.exclude_events == frozenset(['query'])


class TestEventModels:
    """Test event models"""

    HEADER = EventHeader(timestamp=1, event_type=19, server_id=1, event_size=40, next_log_position=200, flags=0)

    def test_column_schema_from_row(self):
        """Test column metadata mapping"""
        column = ColumnSchema.from_row(column_row('name', 'varchar(32)', 'utf8mb4_bin', 'utf8mb4', 'user name'))

        assert column.name == "name"
        assert column.collation == "utf8mb4_bin"
        assert column.character_set == "utf8mb4"
        assert column.comment == "user name"
        assert column.declared_type == "varchar(32)"

    def test_table_schema_entry_requires_columns(self):
        """Test entries never hold an empty column list"""
        with pytest.raises(ValueError):
            TableSchemaEntry(table_id=7, schema_name="db1", table_name="t1", columns=[])

    def test_table_map_merge_and_dict(self):
        """Test merged columns appear in the serialized table map"""
        entry = TableSchemaEntry(7, "db1", "t1", [ColumnSchema("id", declared_type="int(11)")])
        event = TableMapEvent(header=self.HEADER, table_id=7, schema_name="db1", table_name="t1", column_count=1)
        event.update_column_info(entry)
        event.cursor = ReplicationCursor("mysql-bin.000001", 200)

        data = event.to_dict()

        assert data['type'] == "tablemap"
        assert data['columns'][0]['name'] == "id"
        assert data['cursor'] == {'log_file': "mysql-bin.000001", 'offset': 200}

    def test_rows_attach_table(self):
        """Test row events take table identity from the cache entry"""
        entry = TableSchemaEntry(7, "db1", "t1", [ColumnSchema("id")])
        event = UpdateRowsEvent(header=self.HEADER, table_id=7, rows_payload=b'\x00\x01')

        event.attach_table(entry)

        assert (event.schema_name, event.table_name) == ("db1", "t1")
        assert event.to_dict()['rows_payload_size'] == 2
        assert event.type_name == "updaterows"
