"""Descriptor of how workers obtain database connections."""

from __future__ import annotations

import dataclasses
import logging
import typing as t

import jsonschema
import sqlalchemy.exc
from sqlalchemy.engine import make_url

from sqlio.configuration import merge_config_sources, parse_environment_config
from sqlio.connectors.sql import PooledConnectionSource, PoolSettings
from sqlio.exceptions import ConfigValidationError
from sqlio.helpers._transfer import transfer_error

if t.TYPE_CHECKING:
    from sqlalchemy.engine import URL

    from sqlio.helpers.types import ConnectionFactory

logger = logging.getLogger(__name__)

#: Connection properties value marking a sink without batch or transaction support.
COMPATIBILITY_MARKER = "hive"

DEFAULT_ENV_PREFIX = "SQLIO_"

DATA_SOURCE_CONFIG_JSONSCHEMA: dict[str, t.Any] = {
    "type": "object",
    "properties": {
        "driver": {
            "type": "string",
            "description": "SQLAlchemy driver name, e.g. 'postgresql+psycopg2'.",
        },
        "url": {
            "type": "string",
            "description": "SQLAlchemy database URL.",
        },
        "username": {"type": "string"},
        "password": {"type": "string", "secret": True},
        "connection_properties": {
            "type": "string",
            "description": (
                "Driver properties as 'key=value;key=value', or "
                f"'{COMPATIBILITY_MARKER}' for sinks without batch or transaction "
                "support."
            ),
        },
    },
    "additionalProperties": False,
}


def _format_validation_error(error: jsonschema.ValidationError) -> str:
    result = f"{error.message}"

    if error.path:
        result += f" in config[{']['.join(repr(index) for index in error.path)}]"

    return result


def parse_connection_properties(connection_properties: str) -> dict[str, str]:
    """Parse a ``key=value;key=value`` property string.

    Args:
        connection_properties: The property string.

    Returns:
        The properties as a dictionary.

    Raises:
        ValueError: If an entry is not of the form ``key=value``.
    """
    properties: dict[str, str] = {}
    for entry in connection_properties.split(";"):
        if not entry.strip():
            continue
        key, sep, value = entry.partition("=")
        if not sep or not key.strip():
            msg = f"Invalid connection property '{entry}', expected 'key=value'"
            raise ValueError(msg)
        properties[key.strip()] = value.strip()
    return properties


@dataclasses.dataclass(frozen=True)
class DataSourceConfig:
    """How each worker instance obtains its database connection.

    Either pass ``data_source``, a zero-argument callable returning a new DB-API
    connection, or a SQLAlchemy ``url`` (``driver`` optionally overrides the URL's
    driver name). The descriptor is copied by value into every worker instance, so
    ``data_source`` must be serializable with ``cloudpickle``.

    Example:
        >>> config = DataSourceConfig(
        ...     url="postgresql://db.internal:5432/sales",
        ...     username="loader",
        ...     password="s3cret",
        ...     connection_properties="connect_timeout=10",
        ... )
        >>> config.display_data()["url"]
        'postgresql://db.internal:5432/sales'

    Raises:
        ConfigValidationError: If the descriptor is incomplete or invalid.
    """

    driver: str | None = None
    url: str | None = None
    username: str | None = None
    password: str | None = dataclasses.field(default=None, repr=False)
    connection_properties: str | None = None
    data_source: ConnectionFactory | None = None

    def __post_init__(self) -> None:  # noqa: D105
        errors = self.validate()
        if errors:
            summary = f"Invalid data source configuration: {'; '.join(errors)}"
            raise ConfigValidationError(summary, errors=errors)

    def validate(self) -> list[str]:
        """Collect every problem with this descriptor.

        Returns:
            A list of validation errors, empty if the descriptor is usable.
        """
        errors: list[str] = []
        if self.data_source is not None:
            if not callable(self.data_source):
                errors.append("data_source must be a callable returning a connection")
            elif problem := transfer_error(self.data_source, "data_source"):
                errors.append(problem)
        elif self.url is None:
            errors.append("Either 'data_source' or 'url' is required")
        else:
            try:
                make_url(self.url)
            except sqlalchemy.exc.ArgumentError as e:
                errors.append(f"Could not parse url: {e}")

        if self.connection_properties is not None and not self.compatibility_mode:
            try:
                parse_connection_properties(self.connection_properties)
            except ValueError as e:
                errors.append(str(e))

        return errors

    @classmethod
    def from_dict(cls, config: t.Mapping[str, t.Any]) -> DataSourceConfig:
        """Build a descriptor from a plain configuration mapping.

        Args:
            config: Settings matching ``DATA_SOURCE_CONFIG_JSONSCHEMA``.

        Returns:
            A validated descriptor.

        Raises:
            ConfigValidationError: If the mapping does not match the schema.
        """
        validator = jsonschema.Draft7Validator(DATA_SOURCE_CONFIG_JSONSCHEMA)
        errors = [_format_validation_error(e) for e in validator.iter_errors(config)]
        if errors:
            summary = f"Config validation failed: {'; '.join(errors)}"
            raise ConfigValidationError(summary, errors=errors)
        return cls(**config)

    @classmethod
    def from_env(
        cls,
        prefix: str = DEFAULT_ENV_PREFIX,
        dotenv_path: str | None = None,
    ) -> DataSourceConfig:
        """Build a descriptor from environment variables such as ``SQLIO_URL``.

        Args:
            prefix: Environment variable prefix.
            dotenv_path: A .env file to load first. Searched for if omitted.

        Returns:
            A validated descriptor.
        """
        config = parse_environment_config(
            DATA_SOURCE_CONFIG_JSONSCHEMA,
            prefix=prefix,
            dotenv_path=dotenv_path,
        )
        return cls.from_dict(config)

    @classmethod
    def from_sources(
        cls,
        inputs: t.Iterable[str],
        env_prefix: str = DEFAULT_ENV_PREFIX,
    ) -> DataSourceConfig:
        """Build a descriptor from JSON files and/or the environment.

        Args:
            inputs: JSON file paths, or ``"ENV"`` for environment variables. Later
                inputs override earlier ones.
            env_prefix: Environment variable prefix.

        Returns:
            A validated descriptor.
        """
        config = merge_config_sources(
            inputs,
            DATA_SOURCE_CONFIG_JSONSCHEMA,
            env_prefix=env_prefix,
        )
        return cls.from_dict(config)

    def with_username(self, username: str) -> DataSourceConfig:
        """Return a copy using ``username``.

        Args:
            username: Database user.

        Returns:
            A new descriptor.
        """
        return dataclasses.replace(self, username=username)

    def with_password(self, password: str) -> DataSourceConfig:
        """Return a copy using ``password``.

        Args:
            password: Database password.

        Returns:
            A new descriptor.
        """
        return dataclasses.replace(self, password=password)

    def with_connection_properties(
        self,
        connection_properties: str,
    ) -> DataSourceConfig:
        """Return a copy using ``connection_properties``.

        Args:
            connection_properties: ``key=value;key=value`` or the compatibility
                marker.

        Returns:
            A new descriptor.

        Raises:
            ConfigValidationError: If ``connection_properties`` is None.
        """
        if connection_properties is None:
            msg = "connection_properties can not be None"
            raise ConfigValidationError(msg, errors=[msg])
        return dataclasses.replace(self, connection_properties=connection_properties)

    @property
    def compatibility_mode(self) -> bool:
        """Whether the target lacks batch and transaction support.

        Returns:
            True if ``connection_properties`` is the compatibility marker.
        """
        return self.connection_properties == COMPATIBILITY_MARKER

    @property
    def sqlalchemy_url(self) -> URL:
        """The URL connections are made to, with credentials and properties applied.

        Returns:
            A SQLAlchemy URL.

        Raises:
            ConfigValidationError: If the descriptor uses an explicit data source.
        """
        if self.url is None:
            msg = "Descriptor uses an explicit data source and has no url"
            raise ConfigValidationError(msg, errors=[msg])

        url = make_url(self.url)
        if self.driver:
            url = url.set(drivername=self.driver)
        if self.username is not None:
            url = url.set(username=self.username)
        if self.password is not None:
            url = url.set(password=self.password)
        if self.connection_properties and not self.compatibility_mode:
            url = url.update_query_dict(
                parse_connection_properties(self.connection_properties),
            )
        return url

    def display_data(self) -> dict[str, str]:
        """Describe the descriptor for logs, without secrets.

        Returns:
            A mapping of display names to values.
        """
        if self.data_source is not None:
            factory = self.data_source
            module = getattr(factory, "__module__", None) or type(factory).__module__
            name = getattr(factory, "__qualname__", type(factory).__qualname__)
            return {"data_source": f"{module}.{name}"}

        data = {
            "driver": self.driver,
            "url": make_url(self.url).render_as_string(hide_password=True)
            if self.url
            else None,
            "username": self.username,
        }
        return {key: value for key, value in data.items() if value is not None}

    def build_connection_source(self) -> PooledConnectionSource:
        """Create the single-connection pool a worker instance owns.

        Each worker gets a dedicated connection rather than sharing a pool across
        workers. Compatibility targets get a pool that does not roll connections
        back on return.

        Returns:
            A new connection source. The caller must close it.
        """
        settings = PoolSettings(reset_on_return=not self.compatibility_mode)
        logger.debug("Building connection source for %s", self.display_data())
        if self.data_source is not None:
            return PooledConnectionSource.from_factory(self.data_source, settings)
        return PooledConnectionSource.from_url(self.sqlalchemy_url, settings)
