"""Central configuration helper for the conversation RAG bridge."""

import logging
import os
from collections.abc import Mapping


class HelperConfig:
    """Central configuration helper. Reads all settings from environment variables.

    Explicit overrides passed to the constructor take precedence over the
    process environment (used by the ingest runner and by tests).
    """

    def __init__(self, logger: logging.Logger, overrides: Mapping[str, str] | None = None) -> None:
        self._logger = logger
        self._overrides = {k.upper(): str(v) for k, v in (overrides or {}).items()}

    def _read_raw(self, key: str) -> str | None:
        """Return the raw value of a key, or None when unset or empty."""
        key = key.upper()
        raw = self._overrides.get(key)
        if raw is None:
            raw = os.getenv(key)
        return raw.strip() if raw and raw.strip() else None

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string setting.

        Args:
            key (str): Setting name (case-insensitive).
            default (str | None): Fallback value if the setting is not set.

        Returns:
            str: The resolved value.

        Raises:
            ValueError: If the setting is not set and no default is provided.
        """
        val = self._read_raw(key)
        if val is None and default is None:
            raise ValueError(f"Environment variable '{key.upper()}' is not set.")
        return val if val is not None else default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric setting.

        Args:
            key (str): Setting name (case-insensitive).
            default (float | int | None): Fallback value if the setting is not set.

        Returns:
            float | int: The resolved numeric value.

        Raises:
            ValueError: If the setting is not set and no default is provided.
            ValueError: If the value cannot be parsed as a number.
        """
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        try:
            return int(raw) if "." not in raw else float(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        raw = self._read_raw(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        return raw.lower() in ("true", "1", "yes")

    def get_choice_val(self, key: str, choices: list[str], default: str | None = None) -> str:
        """Read a string setting restricted to a fixed set of values (case-insensitive).

        Args:
            key (str): Setting name.
            choices (list[str]): Allowed lowercase values.
            default (str | None): Fallback value if the setting is not set.

        Returns:
            str: The lowercase value.

        Raises:
            ValueError: If the value is not one of the allowed choices.
        """
        val = self.get_string_val(key, default=default).lower()
        if val not in choices:
            raise ValueError(f"Environment variable '{key.upper()}' must be one of {choices}. Got: '{val}'")
        return val

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list setting in the syntax "[elem1,elem2,...]".

        Args:
            key (str): Setting name (case-insensitive).
            default (list[str] | None): Fallback value if the setting is not set.
            separator (str): The delimiter between elements.
            element_type (type): The type to which each element should be cast.

        Returns:
            list: The resolved list of elements.

        Raises:
            ValueError: If the setting is not set and no default is provided, or is malformed.
        """
        raw_val = self._read_raw(key)
        if raw_val is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        if not raw_val.startswith("[") or not raw_val.endswith("]"):
            raise ValueError(f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw_val}'")
        elements = [v.strip() for v in raw_val[1:-1].split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key.upper()}' contains invalid elements: {e}. Type set to {element_type.__name__}. Got: '{raw_val}'")

    def get_logger(self) -> logging.Logger:
        """Return the application logger."""
        return self._logger
