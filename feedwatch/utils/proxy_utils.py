"""
Proxy Utilities

Proxy configuration and requests session construction for feed fetching.
"""

import logging
from typing import Optional, Dict, Tuple

import requests

logger = logging.getLogger(__name__)


class ProxyConfig:
    """
    Manages proxy configuration for feed fetching.
    """

    def __init__(self, proxy_config: Optional[Dict] = None):
        """
        Initialize proxy configuration.

        Args:
            proxy_config: Proxy configuration dictionary
        """
        proxy_config = proxy_config or {}
        self.enabled = proxy_config.get('enabled', False)
        self.host = proxy_config.get('host', 'localhost')
        self.port = proxy_config.get('port', 8081)
        self.protocol = proxy_config.get('protocol', 'http')
        self.username = proxy_config.get('username')
        self.password = proxy_config.get('password')

        self._proxy_url = self._build_proxy_url()

    def _build_proxy_url(self) -> Optional[str]:
        """Build proxy URL from configuration."""
        if not self.enabled:
            return None

        if self.username and self.password:
            return f"{self.protocol}://{self.username}:{self.password}@{self.host}:{self.port}"
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def proxy_url(self) -> Optional[str]:
        """Get proxy URL."""
        return self._proxy_url

    @property
    def proxy_dict(self) -> Optional[Dict[str, str]]:
        """Get proxy dictionary for requests."""
        if not self.proxy_url:
            return None

        return {
            'http': self.proxy_url,
            'https': self.proxy_url
        }


def validate_proxy_settings(proxy_settings: Dict) -> Tuple[bool, str]:
    """
    Validate proxy settings.

    Args:
        proxy_settings: Proxy configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(proxy_settings, dict):
        return False, "Proxy settings must be a dictionary"

    if not proxy_settings.get('enabled', False):
        return True, ""

    for field in ('host', 'port'):
        if field not in proxy_settings:
            return False, f"Missing required field: {field}"

    try:
        port = int(proxy_settings['port'])
        if not (1 <= port <= 65535):
            return False, "Port must be between 1 and 65535"
    except (ValueError, TypeError):
        return False, "Port must be a valid integer"

    protocol = proxy_settings.get('protocol', 'http')
    if protocol not in ['http', 'https', 'socks5']:
        return False, "Protocol must be 'http', 'https', or 'socks5'"

    # Both or neither
    if bool(proxy_settings.get('username')) != bool(proxy_settings.get('password')):
        return False, "Proxy username and password must be provided together"

    return True, ""


def create_proxy_aware_session(proxy_config: Optional[ProxyConfig] = None,
                               user_agent: Optional[str] = None) -> requests.Session:
    """
    Create a requests session routed through the configured proxy.

    Args:
        proxy_config: Optional proxy configuration
        user_agent: Optional fixed User-Agent header for every request

    Returns:
        Configured requests.Session
    """
    session = requests.Session()

    if proxy_config is not None and proxy_config.proxy_dict:
        session.proxies.update(proxy_config.proxy_dict)
        logger.info(f"Session routed through proxy {proxy_config.host}:{proxy_config.port}")

    if user_agent:
        session.headers['User-Agent'] = user_agent

    return session
