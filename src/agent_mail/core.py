"""Agent core: the aggregate owning registry, state, dispatcher and emitter.

Built once at startup by ``load_core``. Nothing here is a module-level
singleton; every component receives the collaborators it needs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib import resources as importlib_resources

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .dispatcher import CommandDispatcher
from .emitter import EventEmitter, PublishFn
from .errors import AgentMailError, StartupError
from .protocol import EventMessage, RawCommand
from .registry import TypeRegistry, load_avro_schema
from .state import AgentState, StateMachine

logger = logging.getLogger(__name__)

MANIFEST_PATH = "manifest.json"


class Resources(ABC):
    """Read-only access to bundled data files (manifest, schemas)."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read a resource.

        Raises:
            FileNotFoundError: If the resource does not exist
        """
        ...


class PackageResources(Resources):
    """Resources shipped as package data."""

    def __init__(self, package: str = "agent_mail", directory: str = "resources") -> None:
        self._root = importlib_resources.files(package).joinpath(directory)

    def read(self, path: str) -> bytes:
        return self._root.joinpath(path.lstrip("/")).read_bytes()


class InMemoryResources(Resources):
    """Resources held in a dict, keyed by path."""

    def __init__(self, files: dict[str, str | bytes]) -> None:
        self._files = {
            k.lstrip("/"): v.encode("utf-8") if isinstance(v, str) else v for k, v in files.items()
        }

    def read(self, path: str) -> bytes:
        try:
            return self._files[path.lstrip("/")]
        except KeyError:
            raise FileNotFoundError(path) from None


class Manifest(BaseModel):
    """Agent manifest: identity plus the schemas and types to register."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    version: str
    description: str = ""
    schemas: list[str] = Field(default_factory=list)
    types: dict[str, str] = Field(default_factory=dict)
    commands: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)


@dataclass
class AgentCore:
    """Everything a running agent owns."""

    manifest: Manifest
    registry: TypeRegistry
    state: StateMachine
    emitter: EventEmitter
    dispatcher: CommandDispatcher

    @property
    def current_state(self) -> AgentState:
        return self.state.state

    def notify(self, state: AgentState | str) -> None:
        """Forward a transport state notification."""
        self.state.notify(state)

    async def dispatch(self, raw: RawCommand) -> EventMessage | None:
        return await self.dispatcher.dispatch(raw)


def load_core(resources: Resources, publish: PublishFn) -> AgentCore:
    """Build an AgentCore from bundled resources.

    Reads the manifest, registers every schema and type it declares, then
    freezes the registry. The returned core is in ``disconnected`` state.

    Args:
        resources: Source of the manifest and schema definitions
        publish: Publish capability for outgoing events

    Raises:
        StartupError: If a resource is missing or invalid, or registration failed
    """
    try:
        manifest = Manifest.model_validate_json(resources.read(MANIFEST_PATH))
    except (OSError, pydantic.ValidationError) as e:
        raise StartupError(f"Failed to load manifest: {e}") from e

    registry = TypeRegistry()

    for path in manifest.schemas:
        try:
            content = resources.read(path)
        except OSError as e:
            raise StartupError(f"Failed to load schema {path}: {e}") from e
        try:
            registry.register_schema(load_avro_schema(content))
        except AgentMailError as e:
            raise StartupError(f"Failed to register schema {path}: {e}") from e

    for type_name, schema_name in manifest.types.items():
        try:
            registry.register_type(type_name, schema_name)
        except AgentMailError as e:
            raise StartupError(
                f"Failed to register type {type_name} (which is a {schema_name}): {e}"
            ) from e

    registry.freeze()

    state = StateMachine()
    emitter = EventEmitter(registry, publish)
    dispatcher = CommandDispatcher(registry, state, emitter)

    logger.info(
        f"Loaded {manifest.name} {manifest.version}: "
        f"{len(manifest.schemas)} schema(s), {len(manifest.types)} type(s)"
    )
    return AgentCore(
        manifest=manifest,
        registry=registry,
        state=state,
        emitter=emitter,
        dispatcher=dispatcher,
    )
