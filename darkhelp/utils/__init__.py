from darkhelp.utils.image_utils import (
    load_image,
    load_names,
    obj_id_to_color,
    parse_size,
    resize_keeping_aspect_ratio,
)

__all__ = [
    "load_image",
    "load_names",
    "obj_id_to_color",
    "parse_size",
    "resize_keeping_aspect_ratio",
]
