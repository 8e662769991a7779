"""
Configuration manager for the practice engine settings.
"""
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .orchestrator import DEFAULT_BATCH_DELAY_MS


STORAGE_BACKENDS = ("json", "memory")


@dataclass
class EngineSettings:
    """Tunable settings for question generation and score storage."""
    batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS
    generator_host: str = "http://localhost:11434"
    generator_model: str = "llama3.1"
    generator_timeout: int = 120
    storage_backend: str = "json"
    data_directory: str = "./data/"


class ConfigManager:
    """Manages engine configuration and its validation."""

    DEFAULT_BATCH_DELAY_MS = DEFAULT_BATCH_DELAY_MS
    DEFAULT_GENERATOR_HOST = "http://localhost:11434"
    DEFAULT_GENERATOR_MODEL = "llama3.1"
    DEFAULT_GENERATOR_TIMEOUT = 120
    DEFAULT_STORAGE_BACKEND = "json"
    DEFAULT_DATA_DIRECTORY = "./data/"

    # Validation limits
    MIN_BATCH_DELAY_MS = 0
    MAX_BATCH_DELAY_MS = 60000
    MIN_GENERATOR_TIMEOUT = 5
    MAX_GENERATOR_TIMEOUT = 600

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._settings = EngineSettings()

    def get_settings(self) -> EngineSettings:
        """Return a copy of the current settings."""
        return EngineSettings(**vars(self._settings))

    def apply_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the 'engine' section of a loaded config.json plus environment overrides.

        Args:
            config: Full configuration dictionary

        Returns:
            Dictionary with success status and the messages of any rejected values
        """
        engine = dict(config.get('engine', {}) or {})
        if os.getenv('OLLAMA_HOST'):
            engine['generator_host'] = os.getenv('OLLAMA_HOST')
        if os.getenv('OLLAMA_MODEL'):
            engine['generator_model'] = os.getenv('OLLAMA_MODEL')

        setters = {
            'batch_delay_ms': self.set_batch_delay_ms,
            'generator_host': self.set_generator_host,
            'generator_model': self.set_generator_model,
            'generator_timeout': self.set_generator_timeout,
            'storage_backend': self.set_storage_backend,
            'data_directory': self.set_data_directory,
        }

        errors = []
        for key, value in engine.items():
            setter = setters.get(key)
            if setter is None:
                self.logger.warning(f"Ignoring unknown engine setting '{key}'")
                continue
            result = setter(value)
            if not result['success']:
                errors.append(result['error'])

        return {
            'success': not errors,
            'errors': errors,
            'user_message': "✅ Configuration applied" if not errors else "❌ Some settings were rejected"
        }

    def set_batch_delay_ms(self, delay_ms: int) -> Dict[str, Any]:
        """
        Set the pause between daily quiz batch calls.

        Args:
            delay_ms: Delay in milliseconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(delay_ms, bool) or not isinstance(delay_ms, int):
            error_msg = f"Batch delay must be an integer, got {type(delay_ms).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay_ms).__name__}"
            }

        if delay_ms < self.MIN_BATCH_DELAY_MS or delay_ms > self.MAX_BATCH_DELAY_MS:
            error_msg = (
                f"Batch delay must be between {self.MIN_BATCH_DELAY_MS} and {self.MAX_BATCH_DELAY_MS} ms"
            )
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._settings.batch_delay_ms = delay_ms
        self.logger.info(f"Batch delay set to {delay_ms} ms")
        return {
            'success': True,
            'message': f"Batch delay set to {delay_ms} ms",
            'user_message': f"✅ Daily quiz batches will be spaced {delay_ms} ms apart"
        }

    def set_generator_host(self, host: str) -> Dict[str, Any]:
        if not isinstance(host, str) or not host.startswith(("http://", "https://")):
            error_msg = f"Generator host must be an http(s) URL, got {host!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid generator host: use a URL like http://localhost:11434"
            }

        self._settings.generator_host = host.rstrip("/")
        self.logger.info(f"Generator host set to {self._settings.generator_host}")
        return {
            'success': True,
            'message': f"Generator host set to {self._settings.generator_host}",
            'user_message': f"✅ Generator host set to {self._settings.generator_host}"
        }

    def set_generator_model(self, model: str) -> Dict[str, Any]:
        if not isinstance(model, str) or not model.strip():
            error_msg = "Generator model cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Model name cannot be empty"
            }

        self._settings.generator_model = model.strip()
        self.logger.info(f"Generator model set to {self._settings.generator_model}")
        return {
            'success': True,
            'message': f"Generator model set to {self._settings.generator_model}",
            'user_message': f"✅ Questions will be generated with {self._settings.generator_model}"
        }

    def set_generator_timeout(self, timeout: int) -> Dict[str, Any]:
        """
        Set the per-request timeout for the question generator.

        Args:
            timeout: Timeout in seconds
        """
        if isinstance(timeout, bool) or not isinstance(timeout, int):
            error_msg = f"Generator timeout must be an integer, got {type(timeout).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(timeout).__name__}"
            }

        if timeout < self.MIN_GENERATOR_TIMEOUT:
            error_msg = f"Generator timeout must be at least {self.MIN_GENERATOR_TIMEOUT} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timeout too short: Minimum is {self.MIN_GENERATOR_TIMEOUT} seconds"
            }

        if timeout > self.MAX_GENERATOR_TIMEOUT:
            error_msg = f"Generator timeout cannot exceed {self.MAX_GENERATOR_TIMEOUT} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timeout too long: Maximum is {self.MAX_GENERATOR_TIMEOUT} seconds"
            }

        self._settings.generator_timeout = timeout
        self.logger.info(f"Generator timeout set to {timeout} seconds")
        return {
            'success': True,
            'message': f"Generator timeout set to {timeout} seconds",
            'user_message': f"✅ Generator timeout set to {timeout} seconds"
        }

    def set_storage_backend(self, backend: str) -> Dict[str, Any]:
        if backend not in STORAGE_BACKENDS:
            error_msg = f"Storage backend must be one of {', '.join(STORAGE_BACKENDS)}, got {backend!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown storage backend: {backend}"
            }

        self._settings.storage_backend = backend
        self.logger.info(f"Storage backend set to {backend}")
        return {
            'success': True,
            'message': f"Storage backend set to {backend}",
            'user_message': f"✅ Scores will be stored in {backend}"
        }

    def set_data_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory holding the score file.

        Args:
            directory: Path to the data directory
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Data directory cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Directory path cannot be empty"
            }

        try:
            normalized_path = str(Path(directory).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid directory path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {directory}"
            }

        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Cannot use system directory: {directory}"
            }

        self._settings.data_directory = normalized_path
        self.logger.info(f"Data directory set to {normalized_path}")
        return {
            'success': True,
            'message': f"Data directory set to {normalized_path}",
            'user_message': f"✅ Data directory set to {normalized_path}"
        }

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = EngineSettings(
            batch_delay_ms=self.DEFAULT_BATCH_DELAY_MS,
            generator_host=self.DEFAULT_GENERATOR_HOST,
            generator_model=self.DEFAULT_GENERATOR_MODEL,
            generator_timeout=self.DEFAULT_GENERATOR_TIMEOUT,
            storage_backend=self.DEFAULT_STORAGE_BACKEND,
            data_directory=self.DEFAULT_DATA_DIRECTORY,
        )
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._settings

        if (not isinstance(settings.batch_delay_ms, int) or
                settings.batch_delay_ms < self.MIN_BATCH_DELAY_MS or
                settings.batch_delay_ms > self.MAX_BATCH_DELAY_MS):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid batch delay: {settings.batch_delay_ms}")

        if (not isinstance(settings.generator_timeout, int) or
                settings.generator_timeout < self.MIN_GENERATOR_TIMEOUT or
                settings.generator_timeout > self.MAX_GENERATOR_TIMEOUT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid generator timeout: {settings.generator_timeout}")

        if not settings.generator_model:
            validation_result["valid"] = False
            validation_result["issues"].append("Invalid generator model: empty")

        if settings.storage_backend not in STORAGE_BACKENDS:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid storage backend: {settings.storage_backend}")

        if not isinstance(settings.data_directory, str) or not settings.data_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid data directory: {settings.data_directory}")

        return validation_result

    def get_user_friendly_validation_errors(self) -> List[str]:
        user_friendly_errors = []
        for issue in self.validate_settings().get("issues", []):
            if "batch delay" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Batch Delay Issue: {issue}. "
                    f"Please set a value between {self.MIN_BATCH_DELAY_MS} and {self.MAX_BATCH_DELAY_MS} ms."
                )
            elif "timeout" in issue.lower():
                user_friendly_errors.append(
                    f"❌ Generator Timeout Issue: {issue}. "
                    f"Please set a value between {self.MIN_GENERATOR_TIMEOUT} and {self.MAX_GENERATOR_TIMEOUT} seconds."
                )
            else:
                user_friendly_errors.append(f"❌ Configuration Issue: {issue}")
        return user_friendly_errors

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._settings
        storage = settings.storage_backend
        if storage == "json":
            storage = f"json ({settings.data_directory})"
        return (
            f"Engine Settings:\n"
            f"• Generator: {settings.generator_model} at {settings.generator_host}\n"
            f"• Generator Timeout: {settings.generator_timeout} seconds\n"
            f"• Daily Batch Delay: {settings.batch_delay_ms} ms\n"
            f"• Storage: {storage}"
        )

    def get_data_directory(self) -> Optional[str]:
        return self._settings.data_directory
