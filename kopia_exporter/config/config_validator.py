"""Configuration validation for the kopia exporter."""

from typing import Any, Dict, Tuple

KNOWN_SECTIONS = ['kopia', 'cache', 'server', 'logging']
LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def parse_bind_address(bind: str) -> Tuple[str, int]:
    """Split a ``host:port`` bind address.

    IPv6 hosts may be given in brackets, e.g. ``[::1]:9090``.

    Raises:
        ValueError: If the address has no valid port.
    """
    host, sep, port_text = bind.rpartition(':')
    if not sep or not host:
        raise ValueError(f"Bind address must be host:port, got {bind!r}")
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Bind address has invalid port: {bind!r}")
    if not (0 <= port <= 65535):
        raise ValueError(f"Bind address has invalid port: {bind!r}")
    return host, port


class ConfigValidator:
    """Validates kopia exporter configuration."""

    def validate(self, config: Dict[str, Any]) -> None:
        """Validate configuration data.

        Args:
            config: Configuration dictionary to validate. Missing keys are
                allowed and filled with defaults later.

        Raises:
            ValueError: If configuration is invalid.
        """
        self._validate_structure(config)
        self._validate_kopia(config.get('kopia', {}))
        self._validate_cache(config.get('cache', {}))
        self._validate_server(config.get('server', {}))
        self._validate_logging(config.get('logging', {}))

    def _validate_structure(self, config: Dict[str, Any]) -> None:
        unknown = [section for section in config if section not in KNOWN_SECTIONS]
        if unknown:
            raise ValueError(f"Unknown configuration sections: {unknown}")

        for section in KNOWN_SECTIONS:
            if section in config and not isinstance(config[section], dict):
                raise ValueError(f"Configuration section '{section}' must be a mapping")

    def _validate_kopia(self, kopia: Dict[str, Any]) -> None:
        if 'bin' in kopia and (not isinstance(kopia['bin'], str) or not kopia['bin']):
            raise ValueError("kopia.bin must be a non-empty string")

        for key in ['args', 'extra_args']:
            if key in kopia and not self._is_string_list(kopia[key]):
                raise ValueError(f"kopia.{key} must be a list of strings")

        if 'timeout_seconds' in kopia:
            timeout = self._number(kopia['timeout_seconds'], 'kopia.timeout_seconds')
            if timeout <= 0:
                raise ValueError(f"kopia.timeout_seconds must be positive, got {timeout}")

    def _validate_cache(self, cache: Dict[str, Any]) -> None:
        if 'seconds' in cache:
            seconds = self._number(cache['seconds'], 'cache.seconds')
            if seconds < 0:
                raise ValueError(f"cache.seconds must not be negative, got {seconds}")

    def _validate_server(self, server: Dict[str, Any]) -> None:
        if 'bind' in server:
            if not isinstance(server['bind'], str):
                raise ValueError("server.bind must be a string")
            parse_bind_address(server['bind'])

        if 'max_bind_retries' in server:
            retries = server['max_bind_retries']
            if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
                raise ValueError(f"server.max_bind_retries must be a non-negative integer, got {retries!r}")

    def _validate_logging(self, logging_config: Dict[str, Any]) -> None:
        level = logging_config.get('level')
        if level is not None and (not isinstance(level, str) or level.upper() not in LOG_LEVELS):
            raise ValueError(f"logging.level must be one of {LOG_LEVELS}, got {level!r}")

    @staticmethod
    def _number(value: Any, key: str) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        return value

    @staticmethod
    def _is_string_list(value: Any) -> bool:
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
