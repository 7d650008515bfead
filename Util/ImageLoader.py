import os
import numpy as np
import cv2
from typing import List, Optional


class ImageLoader:
    IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp', '.gif')

    @staticmethod
    def load_image(path: str, BGRtoRGB: bool = False, grayscale: bool = False) -> np.ndarray:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Image file not found: {path}")
        flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_UNCHANGED
        img = cv2.imread(path, flags)
        if img is None:
            raise ValueError(f"Could not decode image: {path}")
        if BGRtoRGB and img.ndim == 3:
            img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
        return img

    @staticmethod
    def load_images(image_paths: List[str], BGRtoRGB: bool = False) -> List[np.ndarray]:
        images = []
        for path in image_paths:
            if path.lower().endswith(ImageLoader.IMAGE_EXTENSIONS):
                images.append(ImageLoader.load_image(path, BGRtoRGB))
        return images

    @staticmethod
    def load_label_image(path: str, ignore_value: Optional[int] = None) -> np.ndarray:
        """Load a single-channel label map as int32; pixels equal to ignore_value become -1."""
        labels = ImageLoader.load_image(path, grayscale=True).astype(np.int32)
        if ignore_value is not None:
            labels[labels == ignore_value] = -1
        return labels

    @staticmethod
    def save_label_image(path: str, labels: np.ndarray) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        out = np.clip(labels, 0, 255).astype(np.uint8)
        if not cv2.imwrite(path, out):
            raise ValueError(f"Could not write image: {path}")
