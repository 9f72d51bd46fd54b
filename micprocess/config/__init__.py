"""Simple YAML configuration loader for micprocess."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)


class MicProcessConfig:
    """micprocess configuration loader."""
    
    def __init__(self, config_path: str):
        """Initialize configuration loader.
        
        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)
        
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
        
        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()
    
    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        
        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")
        
        # Resolve relative paths
        self._resolve_paths(config)
        
        logger.info("Configuration loaded successfully")
        return config
    
    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        
        # Processor module given as a file path
        if 'processor' in config and 'module' in config['processor']:
            module = str(config['processor']['module'])
            if module.endswith('.py') and not os.path.isabs(module):
                config['processor']['module'] = str(config_dir / module)
        
        # Resolve log file path
        if 'logging' in config and 'file_path' in config['logging']:
            log_path = config['logging']['file_path']
            if not os.path.isabs(log_path):
                config['logging']['file_path'] = str(config_dir / log_path)
    
    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.sample_rate').
        
        Args:
            key_path: Dot-separated key path (e.g., 'processor.module')
            default: Default value if key not found
            
        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config
        
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        
        return value
    
    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.
        
        Args:
            key_path: Dot-separated path to config value (e.g., 'processor.name')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config
        
        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]
        
        # Set the final value
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")
