"""Keyword classifier that keeps PlantLife posts on agriculture and environment topics."""

import re
from dataclasses import dataclass, field

AGRICULTURE = "agriculture"
ENVIRONMENT = "environment"
UNRELATED = "unrelated"

MIN_LENGTH = 10
MAX_HASHTAGS = 5
MAX_MENTIONS = 3

AGRICULTURE_KEYWORDS = (
    # crops and growing
    "plant", "crop", "seed", "sapling", "seedling", "germination", "harvest", "yield",
    "fertilizer", "pesticide", "irrigation", "watering", "soil", "compost", "mulch",
    "garden", "farm", "greenhouse", "hydroponics", "aquaponics", "vertical farming",
    # care
    "pruning", "repotting", "transplanting", "propagation", "cutting",
    "grafting", "pollination", "photosynthesis", "nutrients", "sunlight", "shade",
    "temperature", "humidity", "ventilation", "disease", "pest", "weed",
    # plant types
    "tree", "shrub", "herb", "vegetable", "fruit", "flower", "succulent", "cactus",
    "indoor plant", "outdoor plant", "tropical", "temperate", "annual", "perennial",
    "biennial", "evergreen", "deciduous",
    # practices
    "organic farming", "sustainable agriculture", "permaculture", "biodynamic farming",
    "crop rotation", "companion planting", "cover cropping", "no-till farming",
    "precision agriculture", "smart farming", "urban farming", "community garden",
    # health
    "plant health", "growth", "development", "blooming", "fruiting", "wilting",
    "yellowing", "browning", "root rot", "leaf spot", "powdery mildew", "aphids",
    "spider mites", "fungus", "bacteria", "virus",
    # tools
    "trowel", "pruner", "watering can", "hose", "rake", "hoe", "shovel", "wheelbarrow",
    "garden bed", "planter", "pot", "trellis", "stake", "netting", "row cover",
)

ENVIRONMENT_KEYWORDS = (
    # climate
    "climate", "weather", "temperature", "rainfall", "drought", "flood", "storm",
    "global warming", "climate change", "carbon footprint", "greenhouse gases",
    "emissions", "renewable energy", "solar", "wind", "hydroelectric",
    # ecosystems
    "ecosystem", "biodiversity", "wildlife", "habitat", "conservation", "preservation",
    "endangered species", "native species", "invasive species", "pollination",
    "bees", "butterflies", "birds", "insects", "microorganisms",
    # resources
    "water", "air", "soil", "forest", "ocean", "river", "lake", "mountain",
    "desert", "grassland", "wetland", "marsh", "swamp", "coral reef",
    # issues
    "pollution", "deforestation", "desertification", "soil erosion", "water pollution",
    "air pollution", "plastic waste", "recycling", "waste management", "landfill",
    "ocean acidification", "ocean warming", "melting ice", "sea level rise",
    # sustainability
    "sustainable", "eco-friendly", "green", "organic", "natural", "renewable",
    "biodegradable", "compostable", "zero waste", "circular economy",
    "reduce", "reuse", "recycle", "upcycle", "repurpose",
    # action
    "plant trees", "clean up", "restore", "protect", "conserve", "educate",
    "awareness", "activism", "petition", "volunteer", "donate", "support",
)

UNRELATED_KEYWORDS = (
    # politics
    "politics", "political", "election", "vote", "democrat", "republican",
    "liberal", "conservative", "left", "right", "protest", "rally",
    # entertainment
    "celebrity", "actor", "actress", "singer", "movie", "film", "tv show",
    "television", "music", "concert", "award", "red carpet", "gossip",
    # sports
    "football", "basketball", "baseball", "soccer", "tennis", "golf",
    "olympics", "championship", "tournament", "team", "player", "coach",
    # technology
    "smartphone", "computer", "laptop", "gaming", "video game", "app",
    "software", "programming", "coding", "artificial intelligence", "ai",
    # finance
    "stock market", "investment", "trading", "cryptocurrency", "bitcoin",
    "business", "company", "corporation", "profit", "revenue", "marketing",
    # personal
    "dating", "relationship", "marriage", "divorce", "family drama",
    "personal problems", "complaints", "rants",
)

# Keywords this short only count as whole words ("ai" must not match "rain").
_WHOLE_WORD_MAX_LENGTH = 2

_QUALITY_EMOJI = ("\U0001f331", "\U0001f30d", "♻️")


@dataclass
class ModerationResult:
    is_valid: bool
    category: str
    confidence: int
    reason: str | None = None
    suggestions: list[str] = field(default_factory=list)


def _matches(text: str, keyword: str) -> bool:
    if len(keyword) <= _WHOLE_WORD_MAX_LENGTH:
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def _score(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in set(keywords) if _matches(text, keyword))


def validate_content(content: str) -> ModerationResult:
    """Classify text as agriculture, environment or unrelated.

    Confidence is the relevant share of all keyword hits, as a percentage.
    """
    text = content.lower()
    agriculture = _score(text, AGRICULTURE_KEYWORDS)
    environment = _score(text, ENVIRONMENT_KEYWORDS)
    unrelated = _score(text, UNRELATED_KEYWORDS)

    relevant = agriculture + environment
    total = relevant + unrelated
    confidence = round(100 * relevant / total) if total else 0

    if agriculture > environment:
        result = ModerationResult(True, AGRICULTURE, confidence)
    elif environment > agriculture:
        result = ModerationResult(True, ENVIRONMENT, confidence)
    elif relevant == 0:
        result = ModerationResult(
            False,
            UNRELATED,
            confidence,
            "Content does not appear to be related to agriculture or environment.",
            [
                "Share about your plants, garden, or farming experiences",
                "Discuss environmental topics, climate, or sustainability",
                "Post about wildlife, ecosystems, or natural resources",
                "Share gardening tips, plant care, or agricultural practices",
            ],
        )
    elif unrelated > relevant:
        result = ModerationResult(
            False,
            UNRELATED,
            confidence,
            "Content contains too many unrelated topics.",
            [
                "Focus on agriculture or environment related content",
                "Remove unrelated topics and keywords",
                "Keep posts focused on plants, nature, or sustainability",
            ],
        )
    else:
        result = ModerationResult(
            False,
            UNRELATED,
            confidence,
            "Content needs more agriculture or environment focus.",
            [
                "Add more plant, garden, or nature related content",
                "Include specific agricultural or environmental details",
                "Focus on sustainability, conservation, or plant care",
            ],
        )

    if len(content) < MIN_LENGTH:
        result.is_valid = False
        result.reason = (
            "Content is too short. Please provide more details about your "
            "agriculture or environment topic."
        )
        result.suggestions = [
            "Describe your plant or garden in detail",
            "Explain the environmental issue you want to discuss",
            "Share specific agricultural practices or tips",
        ]

    if unrelated > 3 and unrelated > relevant:
        result.is_valid = False
        result.reason = (
            "Content contains too many unrelated topics that overshadow the "
            "agriculture/environment content."
        )
        result.suggestions = [
            "Focus primarily on plants, gardening, or environmental topics",
            "Remove or minimize unrelated content",
            "Ensure agriculture/environment is the main focus",
        ]

    return result


def filter_post_content(content: str) -> ModerationResult:
    """Topic check plus the hashtag and mention limits applied to posts."""
    result = validate_content(content)
    if not result.is_valid:
        return result

    if content.count("#") > MAX_HASHTAGS:
        result.is_valid = False
        result.reason = f"Too many hashtags. Please limit to {MAX_HASHTAGS} or fewer."
        result.suggestions = [
            "Focus on meaningful content rather than hashtags",
            "Use 3-5 relevant hashtags",
        ]

    if content.count("@") > MAX_MENTIONS:
        result.is_valid = False
        result.reason = f"Too many mentions. Please limit to {MAX_MENTIONS} or fewer."
        result.suggestions = [
            "Focus on your content rather than tagging many users",
            "Use mentions sparingly and meaningfully",
        ]

    return result


def quality_score(content: str) -> int:
    """0-100 score: confidence plus length and emoji bonuses, minus penalties."""
    result = validate_content(content)
    score = result.confidence
    if len(content) > 100:
        score += 10
    if len(content) > 200:
        score += 5
    if any(emoji in content for emoji in _QUALITY_EMOJI):
        score += 5
    if len(content) < 20:
        score -= 20
    if result.category == UNRELATED:
        score -= 30
    return max(0, min(100, score))
