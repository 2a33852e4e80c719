"""
Deterministic keyword-driven image filters.

This is the local fallback for edit commands: no external service is called.
The command is matched case-insensitively against a fixed, ordered keyword
table and the first matching preset is applied to the image. A command with no
known keyword leaves the image untouched, which is a valid outcome rather
than an error.
"""
import io
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from PIL import Image, ImageEnhance, ImageFilter

from core.image_data import decode_data_url, encode_data_url

# Standard sepia colour matrix, 100% strength
SEPIA_MATRIX = (
    0.393, 0.769, 0.189, 0,
    0.349, 0.686, 0.168, 0,
    0.272, 0.534, 0.131, 0,
)

QUICK_COMMANDS = [
    'Make it brighter',
    'Convert to black and white',
    'Apply blur effect',
    'Add sepia tone',
    'Increase contrast',
    'Make it darker',
]


def _blur(img: Image.Image) -> Image.Image:
    return img.filter(ImageFilter.GaussianBlur(radius=5))


def _brightness(factor: float) -> Callable[[Image.Image], Image.Image]:
    return lambda img: ImageEnhance.Brightness(img).enhance(factor)


def _contrast(factor: float) -> Callable[[Image.Image], Image.Image]:
    # Pivot on 50% gray, not the image mean
    table = [min(255, max(0, round((v - 127.5) * factor + 127.5))) for v in range(256)]
    return lambda img: img.point(table * len(img.getbands()))


def saturation_matrix(factor: float) -> Tuple[float, ...]:
    """RGB colour matrix for saturate(factor); grayscale is factor 0."""
    return (
        0.213 + 0.787 * factor, 0.715 - 0.715 * factor, 0.072 - 0.072 * factor, 0,
        0.213 - 0.213 * factor, 0.715 + 0.285 * factor, 0.072 - 0.072 * factor, 0,
        0.213 - 0.213 * factor, 0.715 - 0.715 * factor, 0.072 + 0.928 * factor, 0,
    )


# Rec. 709 luma weights, 100% strength
GRAYSCALE_MATRIX = (
    0.2126, 0.7152, 0.0722, 0,
    0.2126, 0.7152, 0.0722, 0,
    0.2126, 0.7152, 0.0722, 0,
)


def _color_matrix(matrix: Tuple[float, ...]) -> Callable[[Image.Image], Image.Image]:
    return lambda img: img.convert("RGB", matrix)


@dataclass(frozen=True)
class FilterPreset:
    name: str
    keywords: Tuple[str, ...]
    transform: Callable[[Image.Image], Image.Image]
    css: str
    # Colour-only presets run on RGB and get the original alpha back
    color_only: bool = True

    def matches(self, command: str) -> bool:
        lowered = command.lower()
        return any(keyword in lowered for keyword in self.keywords)


# Priority order matters: the first preset whose keyword appears wins
FILTER_PRESETS: Tuple[FilterPreset, ...] = (
    FilterPreset("blur", ("blur",), _blur, "blur(5px)", color_only=False),
    FilterPreset("brightness", ("bright",), _brightness(1.5), "brightness(1.5)"),
    FilterPreset("darken", ("dark",), _brightness(0.6), "brightness(0.6)"),
    FilterPreset("contrast", ("contrast",), _contrast(1.5), "contrast(1.5)"),
    FilterPreset("grayscale", ("grayscale", "black and white"), _color_matrix(GRAYSCALE_MATRIX), "grayscale(100%)"),
    FilterPreset("sepia", ("sepia",), _color_matrix(SEPIA_MATRIX), "sepia(100%)"),
    FilterPreset("saturate", ("saturate",), _color_matrix(saturation_matrix(2.0)), "saturate(2)"),
)


def match_preset(command: Optional[str]) -> Optional[FilterPreset]:
    """Return the highest-priority preset whose keyword occurs in the command."""
    if not command:
        return None
    for preset in FILTER_PRESETS:
        if preset.matches(command):
            return preset
    return None


def find_preset(name: Optional[str]) -> Optional[FilterPreset]:
    """
    Look up a preset by filter name as produced by the classifier.

    Names are compared against preset names first and then fed through the
    keyword table, so "black and white", "Grayscale" and "grayscale" all
    resolve to the same preset.
    """
    if not name or not name.strip():
        return None
    normalized = name.strip().lower()
    for preset in FILTER_PRESETS:
        if preset.name == normalized:
            return preset
    return match_preset(normalized)


def apply_preset(img: Image.Image, preset: FilterPreset) -> Image.Image:
    """Apply one preset to a Pillow image, preserving transparency."""
    has_alpha = img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)
    base = img.convert("RGBA" if has_alpha else "RGB")

    if not preset.color_only:
        return preset.transform(base)

    if has_alpha:
        alpha = base.getchannel("A")
        result = preset.transform(base.convert("RGB"))
        result.putalpha(alpha)
        return result

    return preset.transform(base)


def render_preset(image: str, preset: FilterPreset) -> str:
    """Decode a data URL, apply the preset and re-encode it as PNG."""
    _, image_bytes = decode_data_url(image)
    with Image.open(io.BytesIO(image_bytes)) as img:
        img.load()
        result = apply_preset(img, preset)

    buffer = io.BytesIO()
    result.save(buffer, format="PNG")
    return encode_data_url(buffer.getvalue(), "image/png")


def apply_effect(image: str, command: str) -> str:
    """
    Apply the keyword-matched filter for a command.

    Args:
        image: Source image as a data URL
        command: Free-text edit command

    Returns:
        A PNG data URL with the filter applied, or the input image unchanged
        when no keyword matches
    """
    preset = match_preset(command)
    if preset is None:
        return image
    return render_preset(image, preset)


def apply_named_filter(image: str, filter_name: Optional[str]) -> str:
    """Render a filter instruction returned by the dispatcher; unknown names are a no-op."""
    preset = find_preset(filter_name)
    if preset is None:
        return image
    return render_preset(image, preset)
