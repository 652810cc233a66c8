"""Keyword rule tables that turn a free-text prompt into story metadata.

Each table is an ordered list of rules evaluated first-match-wins against the
lowercased prompt, so the order of the entries decides ties.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class KeywordRule:
    keyword: str
    result: str

    def matches(self, lowered_prompt: str) -> bool:
        return self.keyword in lowered_prompt


def first_match(rules: list[KeywordRule], prompt: str, default: str) -> str:
    lowered = prompt.lower()
    for rule in rules:
        if rule.matches(lowered):
            return rule.result
    return default


DEFAULT_HISTORICAL_PERIOD = "Historical Period"

HISTORICAL_PERIOD_RULES = [
    KeywordRule("pirate", "Golden Age of Piracy (1650-1730)"),
    KeywordRule("knight", "Medieval Period (500-1500)"),
    KeywordRule("viking", "Viking Age (793-1066)"),
    KeywordRule("pharaoh", "Ancient Egypt (3100-30 BC)"),
    KeywordRule("gladiator", "Roman Empire (27 BC-476 AD)"),
    KeywordRule("gunslinger", "American Old West (1800s)"),
    KeywordRule("samurai", "Feudal Japan (1185-1868)"),
    KeywordRule("crusader", "Crusades Era (1095-1291)"),
]

DEFAULT_NARRATIVE_ELEMENT = "historical immersion"

# Character keywords come before setting and mood keywords: "a pirate wakes up
# in a storm" is a maritime story first.
NARRATIVE_ELEMENT_RULES = [
    KeywordRule("pirate", "maritime adventure"),
    KeywordRule("knight", "medieval valor"),
    KeywordRule("castle", "fortress stronghold"),
    KeywordRule("pharaoh", "ancient majesty"),
    KeywordRule("viking", "nordic expedition"),
    KeywordRule("samurai", "warrior's honor"),
    KeywordRule("gladiator", "arena spectacle"),
    KeywordRule("gunslinger", "frontier tension"),
    KeywordRule("crusader", "holy pilgrimage"),
    KeywordRule("storm", "tempestuous weather"),
    KeywordRule("wake up", "awakening"),
]

SUBTITLES = {
    "maritime adventure": "The ship creaks beneath you...",
    "medieval valor": "Honor calls to you...",
    "fortress stronghold": "Stone walls echo with history...",
    "ancient majesty": "The gods watch over you...",
    "nordic expedition": "The sea beckons your journey...",
    "warrior's honor": "Cherry blossoms fall around you...",
    "arena spectacle": "The crowd roars above in the Colosseum...",
    "frontier tension": "Danger lurks in every shadow...",
    "holy pilgrimage": "The holy city appears in the distance...",
    "tempestuous weather": "Thunder roars in the distance...",
    "awakening": "You slowly open your eyes...",
    "historical immersion": "You are transported through time...",
}

ENHANCEMENT_TEMPLATE = (
    "Create a cinematic first-person POV historical video: {prompt}. "
    "STYLE: viral POV format, immersive first-person perspective. "
    "CAMERA: looking down at your own hands and feet, realistic body positioning. "
    "VISUAL: film grain texture, dramatic lighting, rich historical details. "
    "ENVIRONMENT: {period}, period-appropriate props and clothing. "
    "FORMAT: vertical 9:16 aspect ratio, {duration} seconds duration."
)


def extract_historical_period(prompt: str) -> str:
    return first_match(HISTORICAL_PERIOD_RULES, prompt, DEFAULT_HISTORICAL_PERIOD)


def extract_narrative_element(prompt: str) -> str:
    return first_match(NARRATIVE_ELEMENT_RULES, prompt, DEFAULT_NARRATIVE_ELEMENT)


def subtitle_for(prompt: str) -> str:
    return SUBTITLES[extract_narrative_element(prompt)]


def enhance_prompt(prompt: str, duration: int) -> str:
    period = extract_historical_period(prompt)
    if period == DEFAULT_HISTORICAL_PERIOD:
        period = "historically accurate setting"
    return ENHANCEMENT_TEMPLATE.format(prompt=prompt.strip(), period=period, duration=duration)
