# -*- coding: utf-8 -*-
import os
import logging
import tempfile
import concurrent.futures
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from PIL import Image
from tqdm import tqdm

log_formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(threadName)s: %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

log_handler = logging.StreamHandler()
log_handler.setFormatter(log_formatter)

logger = logging.getLogger(__name__)
if not logger.hasHandlers():
    logger.addHandler(log_handler)
    logger.setLevel(logging.WARNING)

SUPPORTED_TYPES = ("webp", "png", "jpeg", "jpg", "avif")

OUTPUT_FORMATS = ("webp", "avif", "png", "jpg", "jpeg")

QUALITY_CHOICES = ("100%", "90%", "85%", "80%", "75%", "70%", "65%")

DEFAULT_DIMENSIONS = "None"

PIL_SAVE_FORMATS = {
    "webp": "WEBP",
    "avif": "AVIF",
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
}

LOSSY_FORMATS = ("webp", "avif", "jpg", "jpeg")

RESAMPLE_FILTER = Image.Resampling.LANCZOS


class NoImagesFoundError(Exception):
    """Raised when a directory holds nothing left to convert."""

    def __init__(self, directory: str):
        super().__init__(f"No images in directory: {directory}")
        self.directory = directory


class ImageConversionError(Exception):
    """A single file failed to convert. Returned, not raised, by convert_image."""

    def __init__(self, input_path: str, output_path: str, cause: Exception):
        super().__init__(f"{os.path.basename(input_path)}: {type(cause).__name__}: {cause}")
        self.input_path = input_path
        self.output_path = output_path
        self.cause = cause


@dataclass(frozen=True)
class ImageRecord:
    path: str  # full file path
    name: str  # file name with extension
    ext: str  # extension only, e.g. ".png"


@dataclass(frozen=True)
class ConversionOptions:
    output_format: str
    resize: bool = False
    quality: int = 100  # percent
    dimensions: str = DEFAULT_DIMENSIONS  # e.g. "1200x750"

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format '{self.output_format}'. Choose one of: {', '.join(OUTPUT_FORMATS)}")
        if not (1 <= self.quality <= 100):
            raise ValueError(f"Quality must be an integer between 1 and 100, got {self.quality}.")

    @classmethod
    def from_answers(cls, output_format: str, resize: bool, quality: str, dimensions: str) -> "ConversionOptions":
        """Build options from raw prompt answers such as ``quality="90%"``."""
        quality_str = (quality or "").replace("%", "").strip()
        return cls(
            output_format=output_format,
            resize=resize,
            quality=int(quality_str or 100),
            dimensions=dimensions or DEFAULT_DIMENSIONS,
        )


def is_image_type(filepath: str) -> bool:
    name = os.path.basename(filepath)
    parts = name.split(".")
    second_token = parts[1] if len(parts) > 1 else None
    ext = os.path.splitext(name)[1][1:]
    return second_token in SUPPORTED_TYPES or ext in SUPPORTED_TYPES


def get_images_from_dir(directory: str) -> List[ImageRecord]:
    """List the supported images directly inside ``directory``.

    Only regular files are returned; subdirectories and symlinks are skipped.
    An ``OSError`` is raised if the directory cannot be listed.
    """
    images = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if not entry.is_file(follow_symlinks=False):
                logger.debug(f"Skipping '{entry.name}': not a regular file.")
                continue
            if not is_image_type(entry.name):
                logger.debug(f"Skipping '{entry.name}': not a supported image type.")
                continue
            images.append(ImageRecord(
                path=os.path.join(directory, entry.name),
                name=entry.name,
                ext=os.path.splitext(entry.name)[1],
            ))
    return images


def get_file_name(file_name: str, output_format: str) -> str:
    # Everything from the first dot onwards is dropped: "my.photo.v2.png" -> "my.<format>"
    return file_name.split(".")[0] + "." + output_format


def resolve_output_dir(input_dir: str, output_dir: Optional[str]) -> str:
    if not output_dir or not output_dir.strip():
        return input_dir
    return output_dir


def create_dir(dir_path: str) -> str:
    directory = os.path.abspath(dir_path)
    if not os.path.isdir(directory):
        logger.info(f"Creating output directory: '{directory}'")
    os.makedirs(directory, exist_ok=True)
    return directory


def parse_dimensions(dimensions: Optional[str]) -> Tuple[int, int]:
    """Parse a ``"WxH"`` string into ``(width, height)``.

    A missing or non-numeric side is returned as 0. The "None" sentinel, an
    empty string or an unparsable value gives ``(0, 0)``, meaning no resampling.
    """
    if not dimensions or dimensions.strip().lower() == "none":
        return 0, 0

    parts = dimensions.strip().lower().split("x")

    def _side(value: str) -> int:
        try:
            return max(0, int(value.strip()))
        except ValueError:
            return 0

    width = _side(parts[0])
    height = _side(parts[1]) if len(parts) > 1 else 0
    return width, height


def fit_within(size: Tuple[int, int], box: Tuple[int, int]) -> Tuple[int, int]:
    """Largest size with the aspect ratio of ``size`` that fits inside ``box``.

    A zero side in ``box`` is unconstrained; ``(0, 0)`` keeps ``size``.
    """
    width, height = size
    box_width, box_height = box
    scales = []
    if box_width > 0:
        scales.append(box_width / width)
    if box_height > 0:
        scales.append(box_height / height)
    if not scales or width <= 0 or height <= 0:
        return size
    scale = min(scales)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ('RGBA', 'LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info)


def resize_image_contain(img: Image.Image, target_width: int, target_height: int, resample_filter: Any) -> Image.Image:
    """Scale ``img`` to fit inside the target box and pad it to the box size.

    With only one side given the image is scaled on that side and not padded.
    """
    new_size = fit_within(img.size, (target_width, target_height))
    fitted = img
    if new_size != img.size:
        logger.debug(f"Scaling {img.size} -> {new_size}")
        fitted = img.resize(new_size, resample_filter)

    box = (target_width, target_height)
    if target_width <= 0 or target_height <= 0 or fitted.size == box:
        return fitted

    if _has_alpha(fitted):
        fitted = fitted.convert('RGBA')
        canvas = Image.new('RGBA', box, (0, 0, 0, 0))
    else:
        fitted = fitted.convert('RGB')
        canvas = Image.new('RGB', box, (0, 0, 0))

    offset = ((target_width - fitted.width) // 2, (target_height - fitted.height) // 2)
    canvas.paste(fitted, offset)
    logger.debug(f"Padded {fitted.size} onto {canvas.size} canvas at {offset}")
    return canvas


def prepare_image_for_save(img: Image.Image, output_format: str) -> Image.Image:
    save_img = img
    original_mode = img.mode
    pil_format = PIL_SAVE_FORMATS[output_format]

    if pil_format == 'JPEG':
        if _has_alpha(img):
            background = Image.new("RGB", img.size, (255, 255, 255))
            rgba = img.convert("RGBA")
            background.paste(rgba, mask=rgba.split()[3])
            save_img = background
        elif img.mode != 'RGB':
            save_img = img.convert('RGB')
    elif pil_format in ('WEBP', 'AVIF'):
        if img.mode not in ('RGB', 'RGBA'):
            save_img = img.convert('RGBA') if _has_alpha(img) else img.convert('RGB')
    elif pil_format == 'PNG':
        if img.mode == 'CMYK':
            save_img = img.convert('RGB')

    if save_img.mode != original_mode:
        logger.debug(f"Image mode converted: '{original_mode}' -> '{save_img.mode}' (Target output format: {output_format})")
    return save_img


def get_save_options(options: ConversionOptions) -> dict:
    save_kwargs = {}
    if not options.resize:
        return save_kwargs
    if options.output_format in LOSSY_FORMATS:
        save_kwargs['quality'] = options.quality
    if options.output_format in ('jpg', 'jpeg', 'png'):
        save_kwargs['optimize'] = True
    return save_kwargs


def convert_image(input_file: str, output_file: str, options: ConversionOptions) -> Optional[ImageConversionError]:
    """Convert one file. Returns ``None`` on success or the captured error.

    The image is written to a temporary file beside ``output_file`` and moved
    into place only once the save succeeds, so a failure never touches an
    existing file at the output path.
    """
    logger.debug(f"Converting: '{input_file}' -> '{output_file}'")
    temp_file = None
    try:
        with Image.open(input_file) as img:
            img.load()
            processed_img = img
            if options.resize:
                width, height = parse_dimensions(options.dimensions)
                processed_img = resize_image_contain(img, width, height, RESAMPLE_FILTER)

            processed_img = prepare_image_for_save(processed_img, options.output_format)

            fd, temp_file = tempfile.mkstemp(
                prefix=f".{os.path.basename(output_file)}.",
                suffix=".part",
                dir=os.path.dirname(os.path.abspath(output_file)),
            )
            os.close(fd)
            processed_img.save(temp_file, format=PIL_SAVE_FORMATS[options.output_format], **get_save_options(options))

        os.replace(temp_file, output_file)
        temp_file = None
        logger.debug(f"Successfully converted '{input_file}'")
        return None

    except Exception as e:
        logger.error(f"Conversion failed for '{input_file}': {type(e).__name__}: {e}")
        if temp_file is not None and os.path.exists(temp_file):
            try:
                os.remove(temp_file)
                logger.debug(f"Removed partially written temporary file: '{temp_file}'")
            except OSError as rm_e:
                logger.error(f"Could not remove partially written temporary file '{temp_file}': {rm_e}")
        return ImageConversionError(input_file, output_file, e)


def convert_images(
    input_dir: str,
    output_dir: str,
    options: ConversionOptions,
    max_workers: Optional[int] = None,
    show_progress: bool = True,
) -> List[Optional[ImageConversionError]]:
    """Convert every image in ``input_dir`` into ``output_dir``.

    Images already carrying the target extension are left alone. All files are
    converted concurrently and the call returns once every one has finished;
    the result list follows the order of the scanned images, with ``None`` for
    each success and an ``ImageConversionError`` for each failure.

    When several images map to the same output name (``a.png`` and ``a.jpg``
    both become ``a.webp``) only the first one is converted; the others get an
    ``ImageConversionError`` wrapping ``FileExistsError``.

    Raises ``NoImagesFoundError`` when nothing is left to convert.
    """
    all_images = get_images_from_dir(input_dir)
    images = [image for image in all_images if image.ext[1:] != options.output_format]
    logger.debug(f"{len(all_images) - len(images)} image(s) already in '{options.output_format}' format skipped.")

    if not images:
        raise NoImagesFoundError(input_dir)

    create_dir(output_dir)

    results: List[Optional[ImageConversionError]] = [None] * len(images)
    tasks = []
    claimed = {}
    for index, image in enumerate(images):
        input_file = os.path.abspath(image.path)
        output_file = os.path.join(output_dir, get_file_name(image.name, options.output_format))
        owner = claimed.setdefault(os.path.abspath(output_file), image.name)
        if owner != image.name:
            logger.warning(f"Skipping '{image.name}': output '{output_file}' is already produced from '{owner}'.")
            results[index] = ImageConversionError(
                input_file, output_file, FileExistsError(f"output name collides with '{owner}'")
            )
            continue
        tasks.append((index, input_file, output_file))

    logger.info(f"Starting conversion of {len(tasks)} images to '{options.output_format}'...")

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(convert_image, input_file, output_file, options): index
            for index, input_file, output_file in tasks
        }

        with tqdm(total=len(futures), desc="Converting images", unit="file", ncols=100, leave=True, disable=not show_progress) as pbar:
            for future in concurrent.futures.as_completed(futures):
                results[futures[future]] = future.result()
                pbar.update(1)

    error_count = sum(1 for result in results if result is not None)
    if error_count > 0:
        logger.warning(f"Image conversion finished with {error_count} errors.")
    else:
        logger.info("Image conversion finished successfully.")
    return results
