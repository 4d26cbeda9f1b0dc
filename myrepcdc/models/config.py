"""
Configuration models for MySQL binlog CDC
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Any, Optional, FrozenSet, Mapping, Union, Iterable, Tuple

from ..exceptions import ConfigurationError, FilterError


SESSION_OPTION_KEYS = frozenset([
    'server_id', 'filename', 'position', 'start_at_end', 'cache_interval',
])

FILTER_OPTION_KEYS = frozenset([
    'include_events', 'exclude_events', 'include_schema', 'exclude_schema',
])

DEFAULT_POSITION = 4

SchemaRule = Union[bool, FrozenSet[str]]


@dataclass
class DatabaseConfig:
    """Database connection configuration"""
    host: str
    port: int = 3306
    user: str = ""
    password: str = ""
    database: str = ""
    charset: str = "utf8mb4"
    connect_timeout: int = 10
    
    def __post_init__(self):
        """Validate configuration after initialization"""
        if not self.host:
            raise ConfigurationError("Host is required")
        if not self.user:
            raise ConfigurationError("User is required")
        if not (1 <= self.port <= 65535):
            raise ConfigurationError("Port must be between 1 and 65535")
    
    def to_connection_params(self) -> Dict[str, Any]:
        """Convert to pymysql connection parameters"""
        params = {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'charset': self.charset,
            'connect_timeout': self.connect_timeout,
            'autocommit': True,
        }
        if self.database:
            params['database'] = self.database
        return params

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DatabaseConfig':
        if not isinstance(data, dict):
            raise ConfigurationError("Database configuration must be a mapping")
        known = {'host', 'port', 'user', 'password', 'database', 'charset', 'connect_timeout'}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown database options: {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True)
class SessionOptions:
    """Replication session options; replaced wholesale on (re)configuration"""
    server_id: Optional[int] = None
    filename: Optional[str] = None
    position: Optional[int] = None
    start_at_end: bool = False
    cache_interval: float = 0
    
    def __post_init__(self):
        if self.server_id is not None and (not isinstance(self.server_id, int) or self.server_id <= 0):
            raise ConfigurationError("Server ID must be a positive integer")
        if self.position is not None and (not isinstance(self.position, int) or self.position < 0):
            raise ConfigurationError("Position must be a non-negative integer")
        if self.cache_interval is None or self.cache_interval < 0:
            raise ConfigurationError("Cache interval must be zero or a positive number of seconds")

    @property
    def start_log_file(self) -> str:
        return self.filename or ""

    @property
    def start_position(self) -> int:
        return DEFAULT_POSITION if self.position is None else self.position

    def with_start(self, filename: str, position: int) -> 'SessionOptions':
        """Return a copy starting at another cursor"""
        return replace(self, filename=filename, position=position)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionOptions':
        values = {key: data[key] for key in SESSION_OPTION_KEYS if key in data and data[key] is not None}
        if 'start_at_end' in values:
            values['start_at_end'] = bool(values['start_at_end'])
        return cls(**values)


def _normalize_events(value: Optional[Iterable[str]], option: str) -> Optional[FrozenSet[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    try:
        return frozenset(str(name).lower() for name in value)
    except TypeError:
        raise FilterError(f"'{option}' must be a list of event names")


def _normalize_schema(value: Optional[Mapping[str, Any]], option: str) -> Optional[Mapping[str, SchemaRule]]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise FilterError(f"'{option}' must map schema names to true or a list of tables")
    rules: Dict[str, SchemaRule] = {}
    for schema, tables in value.items():
        if tables is True:
            rules[schema] = True
        elif tables is False or tables is None:
            # Matches no table
            rules[schema] = frozenset()
        elif isinstance(tables, str):
            rules[schema] = frozenset([tables])
        elif isinstance(tables, (list, tuple, set, frozenset)):
            rules[schema] = frozenset(tables)
        else:
            raise FilterError(f"'{option}' entry for schema '{schema}' must be true or a list of tables")
    return MappingProxyType(rules)


@dataclass(frozen=True)
class FilterSpec:
    """Event-kind and schema/table filters for one streaming session"""
    include_events: Optional[FrozenSet[str]] = None
    exclude_events: Optional[FrozenSet[str]] = None
    include_schema: Optional[Mapping[str, SchemaRule]] = None
    exclude_schema: Optional[Mapping[str, SchemaRule]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FilterSpec':
        return cls(
            include_events=_normalize_events(data.get('include_events'), 'include_events'),
            exclude_events=_normalize_events(data.get('exclude_events'), 'exclude_events'),
            include_schema=_normalize_schema(data.get('include_schema'), 'include_schema'),
            exclude_schema=_normalize_schema(data.get('exclude_schema'), 'exclude_schema'),
        )


def split_start_options(options: Optional[Dict[str, Any]]) -> Tuple[SessionOptions, FilterSpec]:
    """Split a flat start() options mapping into session options and filters"""
    options = dict(options or {})
    unknown = set(options) - SESSION_OPTION_KEYS - FILTER_OPTION_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown replication options: {sorted(unknown)}")
    return SessionOptions.from_dict(options), FilterSpec.from_dict(options)


@dataclass
class CDCConfig:
    """Main CDC configuration loaded from a file"""
    database: DatabaseConfig
    session: SessionOptions
    filters: FilterSpec
    logging: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    
    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.session.server_id is None:
            raise ConfigurationError("session.server_id is required")
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CDCConfig':
        """Create configuration from dictionary"""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        if 'database' not in data:
            raise ConfigurationError("'database' section is required")
        
        session_data = data.get('session') or {}
        unknown = set(session_data) - SESSION_OPTION_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown session options: {sorted(unknown)}")
        filter_data = data.get('filters') or {}
        unknown = set(filter_data) - FILTER_OPTION_KEYS
        if unknown:
            raise ConfigurationError(f"Unknown filter options: {sorted(unknown)}")
        
        return cls(
            database=DatabaseConfig.from_dict(data['database']),
            session=SessionOptions.from_dict(session_data),
            filters=FilterSpec.from_dict(filter_data),
            logging=data.get('logging') or {},
            metrics=data.get('metrics') or {},
        )

    def start_options(self) -> Dict[str, Any]:
        """Flat options mapping accepted by ReplicationEngine.start()"""
        options: Dict[str, Any] = {
            'server_id': self.session.server_id,
            'filename': self.session.filename,
            'position': self.session.position,
            'start_at_end': self.session.start_at_end,
            'cache_interval': self.session.cache_interval,
        }
        for key in FILTER_OPTION_KEYS:
            value = getattr(self.filters, key)
            if value is None:
                continue
            if key.endswith('_schema'):
                options[key] = {
                    schema: (True if tables is True else sorted(tables))
                    for schema, tables in value.items()
                }
            else:
                options[key] = sorted(value)
        return options
