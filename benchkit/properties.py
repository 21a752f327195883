"""
Property categories and kinds.

A *category* is an abstract configurable aspect of an instrument (display format,
measurement parameter, marker state, ...). Categories holding a closed set of
options declare one *kind* per option. Each instrument family owns a
:class:`Registry` built once from fixed tables via :func:`build_registry`; the
registry is frozen afterwards so the set of kinds cannot change at runtime.
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import (
    ConfigurationError,
    DuplicateCategoryError,
    DuplicateKindError,
    RegistryFrozenError,
    UnknownCategoryError,
)


class Domain(Enum):
    """Value domain of a property category."""
    FLAG = 1
    ENUMERATION = 2
    SCALAR = 3
    LAYOUT = 4


@dataclass(frozen=True)
class Category:
    """An abstract configurable aspect of an instrument."""
    name: str
    domain: Domain
    doc: str = ''

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Kind:
    """One concrete, mutually exclusive option within an enumeration category."""
    name: str
    category: Category

    def __str__(self) -> str:
        return self.name


class Registry:
    """
    Set of categories and kinds supported by one instrument family.

    Kind names are unique across the whole registry, so a kind can be looked up
    by name alone. Call :meth:`freeze` once population is complete.
    """

    def __init__(self, name: str = ''):
        self.name = name
        self._categories: Dict[str, Category] = {}
        self._kinds: Dict[str, Kind] = {}
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Registry {self.name!r} is frozen")

    def declare_category(self, name: str, domain: Domain, doc: str = '') -> Category:
        """Register an abstract capability."""
        self._check_mutable()
        if name in self._categories:
            raise DuplicateCategoryError(f"Category {name!r} already declared")
        category = Category(name, domain, doc)
        self._categories[name] = category
        return category

    def declare_kind(self, name: str, category: Category | str) -> Kind:
        """Register a kind under a previously declared enumeration category."""
        self._check_mutable()
        cat = self.category(category)
        if cat.domain != Domain.ENUMERATION:
            raise ConfigurationError(f"Category {cat.name!r} does not take kinds")
        if name in self._kinds:
            raise DuplicateKindError(f"Kind {name!r} already declared")
        kind = Kind(name, cat)
        self._kinds[name] = kind
        return kind

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def category(self, category: Category | str) -> Category:
        """Look up a category by name (or check that a Category belongs here)."""
        name = category.name if isinstance(category, Category) else category
        try:
            found = self._categories[name]
        except KeyError:
            raise UnknownCategoryError(name) from None
        if isinstance(category, Category) and category != found:
            raise UnknownCategoryError(name)
        return found

    def kind(self, name: Kind | str) -> Kind:
        """Look up a kind by name."""
        if isinstance(name, Kind):
            name = name.name
        try:
            return self._kinds[name]
        except KeyError:
            raise ConfigurationError(f"Unknown kind {name!r} for {self.name or 'this registry'}") from None

    def kinds(self, category: Category | str) -> List[Kind]:
        """All kinds of a category, in declaration order."""
        cat = self.category(category)
        return [k for k in self._kinds.values() if k.category == cat]

    @property
    def categories(self) -> List[Category]:
        return list(self._categories.values())

    def __contains__(self, name: str) -> bool:
        return name in self._categories or name in self._kinds

    def __getitem__(self, name: str) -> Kind:
        return self.kind(name)

    def validate(self, category: Category | str, value: Any) -> Any:
        """
        Check that ``value`` is admissible for ``category`` and return it normalized.

        Kind names given as strings are resolved to :class:`Kind` handles.

        Raises:
            ConfigurationError: If the value does not belong to the category's domain
        """
        cat = self.category(category)

        match cat.domain:
            case Domain.FLAG:
                if not isinstance(value, bool):
                    raise ConfigurationError(f"{cat.name} expects True/False, got {value!r}")
                return value
            case Domain.ENUMERATION:
                kind = self.kind(value) if isinstance(value, (str, Kind)) else None
                if kind is None or kind.category != cat:
                    raise ConfigurationError(f"{value} is not a {cat.name}")
                return kind
            case Domain.SCALAR:
                if isinstance(value, bool) or not isinstance(value, Real):
                    raise ConfigurationError(f"{cat.name} expects a real number, got {value!r}")
                return value
            case Domain.LAYOUT:
                return _validate_layout(cat, value)


def _validate_layout(cat: Category, value: Any) -> Tuple[Tuple[int, ...], ...]:
    """Layouts are rectangular matrices of positive integers, numbered from 1."""
    try:
        rows = tuple(tuple(int(v) for v in row) for row in value)
    except TypeError:
        raise ConfigurationError(f"{cat.name} expects a matrix, got {value!r}") from None
    if not rows or not rows[0]:
        raise ConfigurationError(f"{cat.name} layout is empty")
    if any(len(r) != len(rows[0]) for r in rows):
        raise ConfigurationError(f"{cat.name} layout is not rectangular: {value!r}")
    if min(v for r in rows for v in r) != 1:
        raise ConfigurationError(f"{cat.name} layout must be numbered from 1: {value!r}")
    return rows


def build_registry(
    name: str,
    categories: Iterable[Tuple[str, Domain, str]],
    kinds: Iterable[Tuple[str, str]],
    extends: Optional[Registry] = None,
) -> Registry:
    """
    Build and freeze a registry from fixed tables.

    Args:
        name: Family name used in error messages
        categories: ``(name, domain, doc)`` rows
        kinds: ``(kind_name, category_name)`` rows
        extends: Optional registry whose categories and kinds are copied first
    """
    registry = Registry(name)
    if extends is not None:
        for cat in extends.categories:
            registry.declare_category(cat.name, cat.domain, cat.doc)
            for kind in extends.kinds(cat.name) if cat.domain == Domain.ENUMERATION else ():
                registry.declare_kind(kind.name, cat.name)
    for cat_name, domain, doc in categories:
        registry.declare_category(cat_name, domain, doc)
    for kind_name, cat_name in kinds:
        registry.declare_kind(kind_name, cat_name)
    registry.freeze()
    return registry
