from abc import ABC, abstractmethod
from langchain_groq import ChatGroq
from langchain_core.messages import HumanMessage
from langchain_core.output_parsers import JsonOutputParser
import asyncio
import logging
import os

from src.curation.errors import ClassificationError
from src.curation.models import CharacterAnalysis, ImageClassification
from src.curation.prompts import SAFETY_PROMPT_SYSTEM, CHARACTER_ANALYSIS_PROMPT_SYSTEM
from src.curation.thumbnail import ThumbnailGenerator

logger = logging.getLogger(__name__)

DEFAULT_VISION_MODEL = "meta-llama/llama-4-maverick-17b-128e-instruct"


class BaseImageClassifier(ABC):
    @abstractmethod
    async def classify(self, image_url: str) -> ImageClassification:
        """Safety/age classification of an image."""
        pass


class BaseCharacterAnalyzer(ABC):
    @abstractmethod
    async def analyze(self, image_url: str) -> CharacterAnalysis:
        """Descriptive/physical-trait analysis of an image."""
        pass


class GroqVisionClient:
    """Sends one image plus a system prompt to a Groq vision model and parses the JSON reply."""

    def __init__(
        self,
        model: str = DEFAULT_VISION_MODEL,
        api_key: str | None = None,
        temperature: float = 0,
        thumbnail_gen: ThumbnailGenerator | None = None,
    ):
        self.api_key = api_key or os.getenv("GROQ_API_KEY")
        if not self.api_key:
            raise ValueError("GROQ_API_KEY is not set")

        self.llm = ChatGroq(
            model=model,
            temperature=temperature,
            api_key=self.api_key,
            max_retries=3
        )
        self.thumbnail_gen = thumbnail_gen or ThumbnailGenerator()
        self.parser = JsonOutputParser()

    async def invoke(self, prompt: str, image_url: str) -> dict:
        # Download + resize is blocking I/O
        data_url = await asyncio.to_thread(self.thumbnail_gen.to_data_url, image_url)

        message = HumanMessage(
            content=[
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": data_url}},
            ]
        )
        response = await self.llm.ainvoke([message])
        data = self.parser.parse(response.content)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return data


class GroqImageClassifier(BaseImageClassifier):
    """Image safety/age classification via Groq Vision API."""

    def __init__(self, client: GroqVisionClient | None = None, **client_kwargs):
        self.client = client or GroqVisionClient(**client_kwargs)

    async def classify(self, image_url: str) -> ImageClassification:
        try:
            data = await self.client.invoke(SAFETY_PROMPT_SYSTEM, image_url)
            return ImageClassification.model_validate(data)
        except Exception as e:
            raise ClassificationError(f"Safety classification failed for {image_url}: {e}") from e


class GroqCharacterAnalyzer(BaseCharacterAnalyzer):
    """Character trait analysis via Groq Vision API."""

    def __init__(self, client: GroqVisionClient | None = None, **client_kwargs):
        client_kwargs.setdefault("temperature", 0.3)
        self.client = client or GroqVisionClient(**client_kwargs)

    async def analyze(self, image_url: str) -> CharacterAnalysis:
        try:
            data = await self.client.invoke(CHARACTER_ANALYSIS_PROMPT_SYSTEM, image_url)
            # Wrongly typed sections are dropped rather than failing the item
            return CharacterAnalysis.parse_lenient(data)
        except Exception as e:
            raise ClassificationError(f"Character analysis failed for {image_url}: {e}") from e
