"""Configuration management for the streaming relay."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_PORT = 3000


class Configuration:
    """Manages configuration and environment variables for the relay."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys and origins
        self._config = self._load_yaml_config(config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Returns:
            The API key as a string.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "openai")

        # Map provider names to environment variable names
        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "groq": "GROQ_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML.

        Returns:
            Active LLM provider configuration dictionary.

        Raises:
            ValueError: If the provider is missing or its sampling
                parameters are absent or out of range.
        """
        llm_config = self._config.get("llm", {})
        active_provider = llm_config.get("active", "openai")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        provider_config = providers[active_provider]
        required_keys = ["base_url", "model", "temperature", "max_tokens"]
        for key in required_keys:
            if key not in provider_config:
                raise ValueError(
                    f"llm.providers.{active_provider}.{key} must be explicitly "
                    "configured in config.yaml"
                )

        temperature = provider_config["temperature"]
        if not 0 <= temperature <= 2:  # noqa: PLR2004
            raise ValueError("temperature must be between 0 and 2")
        if provider_config["max_tokens"] < 1:
            raise ValueError("max_tokens must be at least 1")

        return provider_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration for the active LLM provider.

        Returns:
            HTTP client timeout configuration.

        Raises:
            ValueError: If required timeouts are missing or not positive.
        """
        http_config = self.get_llm_config().get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured "
                    f"for provider '{self._config['llm']['active']}' in config.yaml"
                )

        for key in required_keys:
            value = http_config[key]
            # A null read timeout leaves idle streams open
            if value is None and key == "read_timeout":
                continue
            if value is None or value <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return http_config

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration; PORT overrides the YAML port.

        Returns:
            Server configuration dictionary with host and port.
        """
        server_config = self._config.get("server", {})
        port_env = os.getenv("PORT")
        try:
            port = int(port_env) if port_env else int(
                server_config.get("port", DEFAULT_PORT)
            )
        except ValueError as e:
            raise ValueError(f"PORT must be an integer, got '{port_env}'") from e

        return {
            "host": server_config.get("host", "0.0.0.0"),  # noqa: S104
            "port": port,
        }

    def get_cors_config(self) -> dict[str, Any]:
        """Get CORS configuration; origins come from ALLOWED_ORIGINS.

        Returns:
            CORS configuration with allowed origin prefixes, methods,
            headers and max age.
        """
        cors_config = self._config.get("server", {}).get("cors", {})
        origins_str = os.getenv("ALLOWED_ORIGINS", "")
        allowed_origins = [
            origin.strip() for origin in origins_str.split(",") if origin.strip()
        ]

        return {
            "allowed_origins": allowed_origins,
            "allow_methods": cors_config.get("allow_methods", ["POST", "OPTIONS", "GET"]),
            "allow_headers": cors_config.get("allow_headers", ["*"]),
            "max_age": cors_config.get("max_age", 86400),
        }

    def get_vision_config(self) -> dict[str, Any]:
        """Get vision request limits and prompt settings.

        Returns:
            Vision configuration dictionary.

        Raises:
            ValueError: If required vision parameters are missing or invalid.
        """
        vision_config = self._config.get("vision", {})

        required_keys = [
            "max_images", "max_image_bytes", "default_prompt", "timezone",
            "assistant_name"
        ]
        for key in required_keys:
            if key not in vision_config:
                raise ValueError(
                    f"vision.{key} must be explicitly configured in config.yaml"
                )

        if vision_config["max_images"] < 1:
            raise ValueError("vision.max_images must be at least 1")
        if vision_config["max_image_bytes"] < 1:
            raise ValueError("vision.max_image_bytes must be at least 1")

        return vision_config

    def get_client_config(self) -> dict[str, Any]:
        """Get streaming client configuration.

        Returns:
            Client configuration dictionary.

        Raises:
            ValueError: If the brain stream URL is not configured.
        """
        client_config = self._config.get("client", {})
        if not client_config.get("brain_stream_url"):
            raise ValueError(
                "client.brain_stream_url must be explicitly configured in config.yaml"
            )
        return client_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
