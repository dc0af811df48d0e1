from abc import ABC, abstractmethod

from skinconsult.domain.entities.image import ProcessedImage


class ImageProcessorPort(ABC):
    @abstractmethod
    def preprocess(self, raw: str | bytes) -> ProcessedImage:
        """
        Normalize an uploaded image (raw bytes, base64 or data URL).

        Raises:
            ImagePreprocessingError: the input cannot be decoded
        """
        raise NotImplementedError
