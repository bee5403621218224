from __future__ import annotations

import logging
from enum import Enum
from typing import Union

from ..validation import ValidationError

logger = logging.getLogger(__name__)


class Size(Enum):
    """Stock slot. NONE is reserved for size-less products."""
    XS = 0
    S = 1
    M = 2
    L = 3
    XL = 4
    NONE = 5

    @property
    def label(self) -> str:
        return "None" if self is Size.NONE else self.name

    @property
    def is_sized(self) -> bool:
        return self is not Size.NONE

    @classmethod
    def parse(cls, value) -> "Size":
        """Accept a Size, a slot index (0..5) or a label ("xs", "None")."""
        if isinstance(value, Size):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise ValidationError(f"Invalid size index: {value}")
        if isinstance(value, str):
            key = value.strip().upper()
            if key.isdigit():
                return cls.parse(int(key))
            try:
                return cls[key]
            except KeyError:
                pass
        raise ValidationError(f"Invalid size: {value!r}")


SIZED_SLOTS = (Size.XS, Size.S, Size.M, Size.L, Size.XL)
SLOT_COUNT = len(Size)


class Category(Enum):
    MEN = 0
    WOMEN = 1
    KIDS = 2
    OTHER = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value) -> "Category":
        if isinstance(value, Category):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise ValidationError(f"Invalid category index: {value}")
        if isinstance(value, str):
            key = value.strip().upper()
            if key.isdigit():
                return cls.parse(int(key))
            try:
                return cls[key]
            except KeyError:
                pass
        raise ValidationError(f"Invalid category: {value!r}")


class _SectionMixin:
    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def is_other(self) -> bool:
        return self.name == "OTHER"


# Section values are the category-relative index written to the data files.
class MenWomenSection(_SectionMixin, Enum):
    EASTERN = 0
    WESTERN = 1
    OTHER = 2


class KidsSection(_SectionMixin, Enum):
    BOYS = 0
    GIRLS = 1
    OTHER = 2


class OtherSection(_SectionMixin, Enum):
    OTHER = 2


Section = Union[MenWomenSection, KidsSection, OtherSection]

SECTIONS_BY_CATEGORY = {
    Category.MEN: MenWomenSection,
    Category.WOMEN: MenWomenSection,
    Category.KIDS: KidsSection,
    Category.OTHER: OtherSection,
}


def sections_for(category: Category) -> list:
    """Sections valid for a category, in display order."""
    return list(SECTIONS_BY_CATEGORY[category])


def resolve_section(category, section) -> Section:
    """
    Validate a (category, section) pair and return the section as the
    category's own variant.

    `section` may be a section member of any variant or a label ("Eastern").
    Any "Other" section, and every section paired with category Other, is
    corrected to the category's Other section. Any other mismatch (Kids with
    Eastern, Men with Boys) raises ValidationError.
    """
    category = Category.parse(category)
    variant = SECTIONS_BY_CATEGORY[category]

    if isinstance(section, str):
        key = section.strip().upper()
    elif isinstance(section, Enum) and section.__class__ in (MenWomenSection, KidsSection, OtherSection):
        key = section.name
    else:
        raise ValidationError(f"Invalid section: {section!r}")

    if category is Category.OTHER:
        if key != "OTHER":
            logger.warning(
                "Category Other only supports section Other; section %s changed to Other", key.capitalize()
            )
        return OtherSection.OTHER

    try:
        return variant[key]
    except KeyError:
        raise ValidationError(
            f"Invalid section {key.capitalize()} for {category.label} category",
            details={"category": category.label, "section": key.capitalize()},
        )


def section_index(category, section) -> int:
    """Category-relative section index used by every file encoding."""
    return resolve_section(category, section).value


def section_from_index(category, index: int) -> Section:
    """Decode a category-relative section index (inverse of section_index)."""
    category = Category.parse(category)
    variant = SECTIONS_BY_CATEGORY[category]
    try:
        return variant(index)
    except ValueError:
        raise ValidationError(
            f"Invalid section index {index} for {category.label} category",
            details={"category": category.label, "section_index": index},
        )
