"""
Configuration service for MySQL binlog CDC
"""

import json
import yaml
from pathlib import Path

from ..exceptions import ConfigurationError, CDCException
from ..models.config import CDCConfig


class ConfigService:
    """Service for loading configuration files"""
    
    def __init__(self):
        self._config: CDCConfig = None
    
    def load_config(self, config_path: str) -> CDCConfig:
        """Load configuration from a JSON or YAML file"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if config_path.suffix.lower() == '.json':
                    config_dict = json.load(f)
                elif config_path.suffix.lower() in ['.yml', '.yaml']:
                    config_dict = yaml.safe_load(f)
                else:
                    raise ConfigurationError(f"Unsupported configuration format: {config_path.suffix}")
            
            self._config = CDCConfig.from_dict(config_dict)
            return self._config
            
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON configuration: {e}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}")
        except CDCException:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Error loading configuration: {e}")
    
    def get_config(self) -> CDCConfig:
        """Get current configuration"""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config
