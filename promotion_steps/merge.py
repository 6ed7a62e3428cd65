"""Three-way merge used when patching Applications.

The store holds raw documents of unknown shape, while the updater only
models the fields it is concerned with. The merge here copies the fields the
updater owns from the desired object onto the latest observed object, leaving
everything else as the Application controller or other users wrote it.
"""

import copy
from typing import Any, TypeAlias

__all__ = [
    "Value",
    "recursive_merge",
    "application_patch",
]


Value: TypeAlias = None | bool | int | float | str | dict[str, "Value"] | list["Value"]


def recursive_merge(src: Value, dst: Value) -> Value:
    """Merge `src` onto `dst`, returning a new value.

    Mappings are merged key by key, recursing into keys present on both sides.
    Sequences take the length of `src`: elements are merged index by index
    with `dst` where both have one, the rest of `src` is taken as is. Scalars,
    and values whose types differ, are replaced by `src`.
    """
    if isinstance(src, dict):
        if not isinstance(dst, dict):
            return copy.deepcopy(src)
        result = dict(dst)
        for key, src_value in src.items():
            if key in dst:
                result[key] = recursive_merge(src_value, dst[key])
            else:
                result[key] = copy.deepcopy(src_value)
        return result
    if isinstance(src, list):
        if not isinstance(dst, list):
            return copy.deepcopy(src)
        return [
            recursive_merge(src_value, dst[i]) if i < len(dst) else copy.deepcopy(src_value)
            for i, src_value in enumerate(src)
        ]
    return src


def application_patch(src: dict[str, Any], dst: dict[str, Any]) -> None:
    """Apply the fields owned by the updater from `src` onto `dst` in place.

    Annotations and the operation are replaced wholesale and the spec is deep
    merged. The recorded operation state is also forced from `src`, since the
    Application controller may otherwise not notice a requested refresh, but
    only when both objects have a status; an Application that was never
    reconciled has none.
    """
    src_annotations = src.get("metadata", {}).get("annotations")
    dst_metadata = dst.setdefault("metadata", {})
    if src_annotations is None:
        dst_metadata.pop("annotations", None)
    else:
        dst_metadata["annotations"] = copy.deepcopy(src_annotations)

    dst["spec"] = recursive_merge(src.get("spec"), dst.get("spec"))

    if (operation := src.get("operation")) is None:
        dst.pop("operation", None)
    else:
        dst["operation"] = copy.deepcopy(operation)

    src_status = src.get("status")
    dst_status = dst.get("status")
    if isinstance(src_status, dict) and isinstance(dst_status, dict):
        if (operation_state := src_status.get("operationState")) is None:
            dst_status.pop("operationState", None)
        else:
            dst_status["operationState"] = copy.deepcopy(operation_state)
