import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from src.curation.errors import ClassificationError
from src.curation.models import AgeRating, CharacterAnalysis, ContentTag, ImageClassification
from src.curation.prompts import SAFETY_PROMPT_SYSTEM
from src.curation.vision import GroqCharacterAnalyzer, GroqImageClassifier, GroqVisionClient

IMAGE_URL = "https://img.example/elf.png"
DATA_URL = "data:image/jpeg;base64,base64str"


@pytest.fixture
def client():
    with patch("src.curation.vision.ChatGroq") as MockGroq:
        client = GroqVisionClient(api_key="fake_key")
        client.llm = MockGroq.return_value
        yield client


def _respond(client, payload):
    mock_msg = MagicMock()
    mock_msg.content = payload if isinstance(payload, str) else json.dumps(payload)
    client.llm.ainvoke = AsyncMock(return_value=mock_msg)


def test_requires_api_key(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    with patch("src.curation.vision.ChatGroq"):
        with pytest.raises(ValueError):
            GroqVisionClient()


@pytest.mark.asyncio
async def test_invoke_sends_prompt_and_image(client):
    _respond(client, {"ok": True})

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL) as to_data_url:
        data = await client.invoke("Describe this", IMAGE_URL)

    assert data == {"ok": True}
    to_data_url.assert_called_once_with(IMAGE_URL)

    messages = client.llm.ainvoke.call_args.args[0]
    content = messages[0].content
    assert content[0] == {"type": "text", "text": "Describe this"}
    assert content[1] == {"type": "image_url", "image_url": {"url": DATA_URL}}


@pytest.mark.asyncio
async def test_classify(client):
    _respond(client, {
        "ageRating": "SIXTEEN",
        "contentTags": ["VIOLENCE", "GORE"],
        "description": "A battle-scarred orc warrior",
    })
    classifier = GroqImageClassifier(client=client)

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL):
        result = await classifier.classify(IMAGE_URL)

    assert isinstance(result, ImageClassification)
    assert result.age_rating == AgeRating.SIXTEEN
    assert result.content_tags == [ContentTag.VIOLENCE, ContentTag.GORE]
    prompt = client.llm.ainvoke.call_args.args[0][0].content[0]["text"]
    assert prompt == SAFETY_PROMPT_SYSTEM


@pytest.mark.asyncio
async def test_analyze_character(client):
    # Models often wrap JSON in a markdown fence
    payload = {
        "physicalCharacteristics": {"hairColor": "green", "species": "orc"},
        "clothing": {"outfit": "plate armor"},
        "overallDescription": "A battle-scarred orc warrior.",
    }
    _respond(client, f"```json\n{json.dumps(payload)}\n```")
    analyzer = GroqCharacterAnalyzer(client=client)

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL):
        result = await analyzer.analyze(IMAGE_URL)

    assert isinstance(result, CharacterAnalysis)
    assert result.physical_characteristics.species == "orc"
    assert result.clothing.outfit == "plate armor"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    "this is not json",
    "[1, 2, 3]",
    json.dumps({"ageRating": "PG-13"}),
])
async def test_classify_bad_response(client, payload):
    _respond(client, payload)
    classifier = GroqImageClassifier(client=client)

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL):
        with pytest.raises(ClassificationError):
            await classifier.classify(IMAGE_URL)


@pytest.mark.asyncio
async def test_download_failure_is_classification_error(client):
    classifier = GroqImageClassifier(client=client)
    client.llm.ainvoke = AsyncMock()

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", side_effect=OSError("404")):
        with pytest.raises(ClassificationError):
            await classifier.classify(IMAGE_URL)
    client.llm.ainvoke.assert_not_called()


@pytest.mark.asyncio
async def test_analyze_character_tolerates_mistyped_fields(client):
    """One wrongly typed field does not fail the whole analysis."""
    _respond(client, {
        "physicalCharacteristics": {"species": "elf", "distinctiveFeatures": "pointed ears"},
        "clothing": "green tunic",
        "overallDescription": "An elf archer in the woods.",
    })
    analyzer = GroqCharacterAnalyzer(client=client)

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL):
        result = await analyzer.analyze(IMAGE_URL)

    assert result.physical_characteristics.species == "elf"
    assert result.physical_characteristics.distinctive_features is None
    assert result.clothing is None
    assert result.overall_description == "An elf archer in the woods."


@pytest.mark.asyncio
async def test_analyze_character_non_object_response(client):
    _respond(client, "[1, 2, 3]")
    analyzer = GroqCharacterAnalyzer(client=client)

    with patch("src.curation.vision.ThumbnailGenerator.to_data_url", return_value=DATA_URL):
        with pytest.raises(ClassificationError):
            await analyzer.analyze(IMAGE_URL)
