"""
Storage key derivation for LMS content.

Layout:
    LMS_Uploads/{course}/thumbnail.{ext}
    LMS_Uploads/{course}/{NN_Module}/{NN_Lesson}/{class}s/{NN}_{item|epoch_ms}_{filename}

Module and lesson folders are optional and only emitted when both ordinal and
title are given. Keys are pure functions of their inputs except for the
millisecond timestamp used when no item id is supplied.
"""
import re
import time
from pathlib import PurePosixPath

from lms_storage.core.constants import DEFAULT_THUMBNAIL_EXT, THUMBNAIL_BASENAME, AssetClass
from lms_storage.core.errors import ValidationError
from lms_storage.models.uploads import UploadHierarchy

ROOT_PREFIX = "LMS_Uploads"

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9-]")
_DASH_RUN_RE = re.compile(r"-+")
_TITLE_INVALID_RE = re.compile(r"[^A-Za-z0-9\s_-]")
_WHITESPACE_RE = re.compile(r"\s+")
_FILENAME_INVALID_RE = re.compile(r"[^a-z0-9.-]")
_EXT_INVALID_RE = re.compile(r"[^a-z0-9]")
_ITEM_ID_INVALID_RE = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_slug(value: str) -> str:
    slug = _SLUG_INVALID_RE.sub("-", (value or "").strip().lower())
    return _DASH_RUN_RE.sub("-", slug).strip("-")


def folder_name(ordinal: int, title: str) -> str:
    """`2, "Safety Basics"` -> `02_Safety_Basics`."""
    cleaned = _TITLE_INVALID_RE.sub("", title or "").strip()
    return f"{ordinal:02d}_{_WHITESPACE_RE.sub('_', cleaned)}"


def sanitize_filename(filename: str) -> str:
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    return _FILENAME_INVALID_RE.sub("-", name.lower())


def sanitize_item_id(item_id: str) -> str:
    """Keeps case and underscores so distinct ids stay distinct."""
    return _ITEM_ID_INVALID_RE.sub("-", (item_id or "").strip()).strip("-")


def thumbnail_extension(filename: str) -> str:
    suffix = PurePosixPath(filename or "").suffix.lower().lstrip(".")
    return _EXT_INVALID_RE.sub("", suffix) or DEFAULT_THUMBNAIL_EXT


def derive_storage_key(
    asset_class: AssetClass | str,
    course_slug: str,
    filename: str,
    *,
    module_ordinal: int | None = None,
    module_title: str | None = None,
    lesson_ordinal: int | None = None,
    lesson_title: str | None = None,
    item_id: str | None = None,
    now_ms: int | None = None,
    root_prefix: str = ROOT_PREFIX,
) -> str:
    asset_class = AssetClass(asset_class)
    course = sanitize_slug(course_slug)
    if not course:
        raise ValidationError("course slug is required")
    if not (filename or "").strip():
        raise ValidationError("filename is required")

    # one live thumbnail per course; a re-upload overwrites it
    if asset_class is AssetClass.THUMBNAIL:
        return f"{root_prefix}/{course}/{THUMBNAIL_BASENAME}.{thumbnail_extension(filename)}"

    segments = [root_prefix, course]
    if module_ordinal is not None and module_title:
        segments.append(folder_name(module_ordinal, module_title))
    if lesson_ordinal is not None and lesson_title:
        segments.append(folder_name(lesson_ordinal, lesson_title))
    segments.append(asset_class.folder)

    content_order = lesson_ordinal if lesson_ordinal is not None else 1
    unique = sanitize_item_id(item_id) if item_id else ""
    if not unique:
        unique = str(now_ms if now_ms is not None else time.time_ns() // 1_000_000)
    segments.append(f"{content_order:02d}_{unique}_{sanitize_filename(filename)}")
    return "/".join(segments)


def derive_key_for(hierarchy: UploadHierarchy, filename: str, *, root_prefix: str = ROOT_PREFIX) -> str:
    return derive_storage_key(
        hierarchy.asset_class,
        hierarchy.course_slug,
        filename,
        module_ordinal=hierarchy.module_ordinal,
        module_title=hierarchy.module_title,
        lesson_ordinal=hierarchy.lesson_ordinal,
        lesson_title=hierarchy.lesson_title,
        item_id=hierarchy.item_id,
        root_prefix=root_prefix,
    )
