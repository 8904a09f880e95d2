"""Runtime metadata lookup: pallets, calls, storage, constants, events and errors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .errors import ArchiveError

META_RESERVED = 0x6174656D
"""Magic number that opens every metadata blob ("meta" in little-endian)."""

SUPPORTED_VERSION = 14


class MetadataError(ArchiveError, LookupError):
    """Base error for lookups in runtime metadata."""

    default_message = "metadata error"


class PalletNotFoundError(MetadataError):
    """Raised when a pallet is not in the metadata."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Pallet {name} not found")


class CallNotFoundError(MetadataError):
    """Raised when a call is not in the metadata."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Call {name} not found")


class EventNotFoundError(MetadataError):
    """Raised when an event is not in the metadata."""

    def __init__(self, pallet_index: int, event_index: int) -> None:
        self.pallet_index = pallet_index
        self.event_index = event_index
        super().__init__(f"Pallet {pallet_index}, Event {event_index} not found")


class ErrorNotFoundError(MetadataError):
    """Raised when a pallet error is not in the metadata."""

    def __init__(self, pallet_index: int, error_index: int) -> None:
        self.pallet_index = pallet_index
        self.error_index = error_index
        super().__init__(f"Pallet {pallet_index}, Error {error_index} not found")


class StorageNotFoundError(MetadataError):
    """Raised when a storage entry is not in the metadata."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Storage {key} not found")


class ConstantNotFoundError(MetadataError):
    """Raised when a constant is not in the metadata."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Constant {key} not found")


class InvalidMetadataError(ArchiveError, ValueError):
    """Base error for metadata that cannot be used."""

    default_message = "invalid metadata"


class InvalidPrefixError(InvalidMetadataError):
    """Raised when the metadata does not start with the magic number."""

    default_message = "Invalid prefix"


class InvalidVersionError(InvalidMetadataError):
    """Raised when the metadata is of an unsupported version."""

    default_message = "Invalid version"


class MissingTypeError(InvalidMetadataError):
    """Raised when a referenced type is absent from the registry."""

    def __init__(self, type_id: int) -> None:
        self.type_id = type_id
        super().__init__(f"Type {type_id} missing from type registry")


class TypeDefNotVariantError(InvalidMetadataError):
    """Raised when a type expected to be an enum is something else."""

    def __init__(self, type_id: int) -> None:
        self.type_id = type_id
        super().__init__(f"Type {type_id} was not a variant/enum type")


class Call(ABC):
    """A dispatchable call of a pallet, identified by pallet and function name."""

    PALLET: ClassVar[str]
    FUNCTION: ClassVar[str]

    @abstractmethod
    def encode(self) -> bytes:
        """The encoded arguments of the call."""

    @classmethod
    def is_call(cls, pallet: str, function: str) -> bool:
        """Whether the given pallet and function names are those of this call."""
        return cls.PALLET == pallet and cls.FUNCTION == function


@dataclass(frozen=True)
class Encoded:
    """Bytes that are already encoded and are passed through unchanged."""

    data: bytes

    def encode(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class Variant:
    """One variant of an enum type."""

    name: str
    index: int
    fields: tuple[Any, ...] = ()
    docs: tuple[str, ...] = ()


@dataclass(frozen=True)
class VariantType:
    """An enum type definition."""

    variants: tuple[Variant, ...] = ()


@dataclass
class TypeRegistry:
    """Type definitions keyed by numeric type id."""

    types: dict[int, Any] = field(default_factory=dict)

    def resolve(self, type_id: int) -> Any | None:
        """The type with this id, or None if there is none."""
        return self.types.get(type_id)


@dataclass(frozen=True)
class StorageEntry:
    """Description of one storage item of a pallet."""

    name: str
    ty: int
    modifier: str = "Optional"
    default: bytes = b""
    docs: tuple[str, ...] = ()


@dataclass(frozen=True)
class PalletConstant:
    """A constant of a pallet with its encoded value."""

    name: str
    ty: int
    value: bytes = b""
    docs: tuple[str, ...] = ()


@dataclass
class PalletDefinition:
    """A pallet as described by the raw metadata; type fields hold type ids."""

    name: str
    index: int
    calls: int | None = None
    storage: Sequence[StorageEntry] | None = None
    constants: Sequence[PalletConstant] = ()
    event: int | None = None
    error: int | None = None


@dataclass
class RuntimeMetadataV14:
    """Version 14 runtime metadata."""

    types: TypeRegistry
    pallets: Sequence[PalletDefinition] = ()


@dataclass
class RuntimeMetadataPrefixed:
    """Metadata as found on chain: magic number, version and body."""

    reserved: int
    version: int
    metadata: Any


@dataclass
class PalletMetadata:
    """Lookup tables of one pallet."""

    index: int
    name: str
    calls: dict[str, int] = field(default_factory=dict)
    storage_entries: dict[str, StorageEntry] = field(default_factory=dict)
    constants: dict[str, PalletConstant] = field(default_factory=dict)

    def encode_call(self, call: Call) -> Encoded:
        """Encode a call as pallet index, call index and the call's arguments."""
        fn_index = self.calls.get(call.FUNCTION)
        if fn_index is None:
            raise CallNotFoundError(call.FUNCTION)
        return Encoded(bytes([self.index, fn_index]) + bytes(call.encode()))

    def storage(self, key: str) -> StorageEntry:
        try:
            return self.storage_entries[key]
        except KeyError:
            raise StorageNotFoundError(key) from None

    def constant(self, key: str) -> PalletConstant:
        try:
            return self.constants[key]
        except KeyError:
            raise ConstantNotFoundError(key) from None


@dataclass(frozen=True)
class EventMetadata:
    """The pallet and name of one event."""

    pallet: str
    event: str
    variant: Variant


@dataclass(frozen=True)
class ErrorMetadata:
    """The pallet and name of one pallet error."""

    pallet: str
    error: str
    variant: Variant

    def description(self) -> list[str]:
        """The documentation lines of the error."""
        return list(self.variant.docs)


class Metadata:
    """Runtime metadata indexed for lookups."""

    def __init__(
        self,
        metadata: RuntimeMetadataV14,
        pallets: Mapping[str, PalletMetadata],
        events: Mapping[tuple[int, int], EventMetadata],
        errors: Mapping[tuple[int, int], ErrorMetadata],
    ) -> None:
        self._metadata = metadata
        self._pallets = dict(pallets)
        self._events = dict(events)
        self._errors = dict(errors)

    @classmethod
    def from_prefixed(cls, prefixed: RuntimeMetadataPrefixed) -> Metadata:
        """Index prefixed version 14 metadata; raise InvalidMetadataError otherwise."""
        if prefixed.reserved != META_RESERVED:
            raise InvalidPrefixError()
        meta = prefixed.metadata
        if prefixed.version != SUPPORTED_VERSION or not isinstance(meta, RuntimeMetadataV14):
            raise InvalidVersionError()

        def variant_type(type_id: int) -> VariantType:
            ty = meta.types.resolve(type_id)
            if ty is None:
                raise MissingTypeError(type_id)
            if not isinstance(ty, VariantType):
                raise TypeDefNotVariantError(type_id)
            return ty

        pallets: dict[str, PalletMetadata] = {}
        for pallet in meta.pallets:
            calls = (
                {v.name: v.index for v in variant_type(pallet.calls).variants}
                if pallet.calls is not None
                else {}
            )
            storage = {e.name: e for e in pallet.storage} if pallet.storage is not None else {}
            constants = {c.name: c for c in pallet.constants}
            pallets[pallet.name] = PalletMetadata(
                index=pallet.index,
                name=pallet.name,
                calls=calls,
                storage_entries=storage,
                constants=constants,
            )

        pallet_events = [
            (pallet, variant_type(pallet.event))
            for pallet in meta.pallets
            if pallet.event is not None
        ]
        events = {
            (pallet.index, var.index): EventMetadata(pallet.name, var.name, var)
            for pallet, ty in pallet_events
            for var in ty.variants
        }

        pallet_errors = [
            (pallet, variant_type(pallet.error))
            for pallet in meta.pallets
            if pallet.error is not None
        ]
        errors = {
            (pallet.index, var.index): ErrorMetadata(pallet.name, var.name, var)
            for pallet, ty in pallet_errors
            for var in ty.variants
        }
        return cls(meta, pallets, events, errors)

    @property
    def pallets(self) -> dict[str, PalletMetadata]:
        return dict(self._pallets)

    def pallet(self, name: str) -> PalletMetadata:
        try:
            return self._pallets[name]
        except KeyError:
            raise PalletNotFoundError(name) from None

    def event(self, pallet_index: int, event_index: int) -> EventMetadata:
        try:
            return self._events[(pallet_index, event_index)]
        except KeyError:
            raise EventNotFoundError(pallet_index, event_index) from None

    def error(self, pallet_index: int, error_index: int) -> ErrorMetadata:
        try:
            return self._errors[(pallet_index, error_index)]
        except KeyError:
            raise ErrorNotFoundError(pallet_index, error_index) from None

    def resolve_type(self, type_id: int) -> Any | None:
        return self._metadata.types.resolve(type_id)

    def runtime_metadata(self) -> RuntimeMetadataV14:
        return self._metadata