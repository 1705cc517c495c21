"""Completion response normalization.

Editors filter and re-sort completion items on the client side and cache
"complete" result sets between keystrokes. The language server cannot
switch that off, so every completion result is rewritten before delivery:

- any response shape becomes one ``CompletionBatch``
- ``isIncomplete`` is forced on, so the editor asks again on every keystroke
- a missing ``filterText`` / ``sortText`` is set to the item's label

Normalization is copy-on-write: the server's objects are never mutated.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import attrs
from lsprotocol import converters
from lsprotocol.types import CompletionItem, CompletionList

from rholang_orchestrator.config import CompletionOptions

_converter = converters.get_converter()


# ---------------------------------------------------------------------------
# Raw response shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BareItems:
    """``CompletionItem[]``: no incompleteness flag."""

    items: tuple[CompletionItem, ...]


@dataclass(frozen=True)
class ItemBatch:
    """``CompletionList``: items plus ``isIncomplete``."""

    is_incomplete: bool
    items: tuple[CompletionItem, ...]
    source: CompletionList | None = None


@dataclass(frozen=True)
class SingleItem:
    item: CompletionItem


RawCompletion = BareItems | ItemBatch | SingleItem


def classify(raw: Any) -> RawCompletion:
    """Sort a server result into one of the three known shapes.

    ``None`` is an empty bare list. Plain JSON mappings are structured with
    the lsprotocol converter first.

    Raises:
        TypeError: For anything that is not a completion result.
    """
    if raw is None:
        return BareItems(())
    if isinstance(raw, CompletionList):
        return ItemBatch(bool(raw.is_incomplete), tuple(raw.items), source=raw)
    if isinstance(raw, CompletionItem):
        return SingleItem(raw)
    if isinstance(raw, Mapping):
        if "items" in raw:
            return classify(_converter.structure(raw, CompletionList))
        return classify(_converter.structure(raw, CompletionItem))
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return BareItems(tuple(_as_item(entry) for entry in raw))
    raise TypeError(f"Unsupported completion result: {type(raw).__name__}")


def _as_item(entry: Any) -> CompletionItem:
    if isinstance(entry, CompletionItem):
        return entry
    if isinstance(entry, Mapping):
        return _converter.structure(entry, CompletionItem)
    raise TypeError(f"Unsupported completion item: {type(entry).__name__}")


# ---------------------------------------------------------------------------
# Canonical batch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompletionBatch:
    is_incomplete: bool
    items: tuple[CompletionItem, ...]

    @classmethod
    def from_raw(cls, raw: RawCompletion) -> CompletionBatch:
        match raw:
            case BareItems(items=items):
                return cls(False, items)
            case ItemBatch(is_incomplete=incomplete, items=items):
                return cls(incomplete, items)
            case SingleItem(item=item):
                return cls(False, (item,))
        raise TypeError(f"Unknown completion shape: {raw!r}")

    def to_lsp(self, template: CompletionList | None = None) -> CompletionList:
        """Render as an LSP ``CompletionList``, keeping *template*'s other fields."""
        if template is not None:
            return attrs.evolve(template, is_incomplete=self.is_incomplete, items=list(self.items))
        return CompletionList(is_incomplete=self.is_incomplete, items=list(self.items))


class ResponseNormalizer:
    """Rewrites completion results according to ``CompletionOptions``."""

    def __init__(self, options: CompletionOptions | None = None) -> None:
        self._options = options or CompletionOptions()

    @property
    def options(self) -> CompletionOptions:
        return self._options

    def normalize_batch(self, raw: Any) -> CompletionBatch:
        return self._normalize_shape(classify(raw))

    def normalize(self, raw: Any) -> CompletionList:
        """Normalize a raw server result into a fresh ``CompletionList``."""
        shape = classify(raw)
        template = shape.source if isinstance(shape, ItemBatch) else None
        return self._normalize_shape(shape).to_lsp(template)

    def _normalize_shape(self, shape: RawCompletion) -> CompletionBatch:
        batch = CompletionBatch.from_raw(shape)
        incomplete = True if self._options.force_incomplete else batch.is_incomplete
        return CompletionBatch(incomplete, tuple(self._normalize_item(i) for i in batch.items))

    def _normalize_item(self, item: CompletionItem) -> CompletionItem:
        changes: dict[str, str] = {}
        if self._options.ensure_filter_text and not item.filter_text:
            changes["filter_text"] = item.label
        if self._options.preserve_sort_text and not item.sort_text:
            changes["sort_text"] = item.label
        return attrs.evolve(item, **changes) if changes else item
