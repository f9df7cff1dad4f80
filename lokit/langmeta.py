"""
Language metadata: native display names, flags, gettext plural rules and the
locale spellings used by different resource formats.
"""
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class LanguageMeta:
    name: str
    flag: str


def _flag(region: str) -> str:
    """Build a flag emoji from a two-letter region code."""
    return "".join(chr(0x1F1E6 + ord(letter) - ord("A")) for letter in region.upper())


# code -> (native name, flag region)
_REGISTRY: Dict[str, Tuple[str, str]] = {
    "af": ("Afrikaans", "ZA"),
    "am": ("አማርኛ", "ET"),
    "ar": ("العربية", "SA"),
    "ar-EG": ("العربية (مصر)", "EG"),
    "az": ("Azərbaycanca", "AZ"),
    "be": ("Беларуская", "BY"),
    "bg": ("Български", "BG"),
    "bn": ("বাংলা", "BD"),
    "bs": ("Bosanski", "BA"),
    "ca": ("Català", "ES"),
    "cs": ("Čeština", "CZ"),
    "cy": ("Cymraeg", "GB"),
    "da": ("Dansk", "DK"),
    "de": ("Deutsch", "DE"),
    "de-AT": ("Deutsch (Österreich)", "AT"),
    "de-CH": ("Deutsch (Schweiz)", "CH"),
    "el": ("Ελληνικά", "GR"),
    "en": ("English", "US"),
    "en-AU": ("English (Australia)", "AU"),
    "en-CA": ("English (Canada)", "CA"),
    "en-GB": ("English (UK)", "GB"),
    "en-IN": ("English (India)", "IN"),
    "en-US": ("English (US)", "US"),
    "es": ("Español", "ES"),
    "es-AR": ("Español (Argentina)", "AR"),
    "es-MX": ("Español (México)", "MX"),
    "et": ("Eesti", "EE"),
    "eu": ("Euskara", "ES"),
    "fa": ("فارسی", "IR"),
    "fi": ("Suomi", "FI"),
    "fr": ("Français", "FR"),
    "fr-BE": ("Français (Belgique)", "BE"),
    "fr-CA": ("Français (Canada)", "CA"),
    "fr-CH": ("Français (Suisse)", "CH"),
    "ga": ("Gaeilge", "IE"),
    "gl": ("Galego", "ES"),
    "gu": ("ગુજરાતી", "IN"),
    "he": ("עברית", "IL"),
    "hi": ("हिन्दी", "IN"),
    "hr": ("Hrvatski", "HR"),
    "hu": ("Magyar", "HU"),
    "hy": ("Հայերեն", "AM"),
    "id": ("Bahasa Indonesia", "ID"),
    "is": ("Íslenska", "IS"),
    "it": ("Italiano", "IT"),
    "ja": ("日本語", "JP"),
    "ka": ("ქართული", "GE"),
    "kk": ("Қазақ тілі", "KZ"),
    "km": ("ខ្មែរ", "KH"),
    "ko": ("한국어", "KR"),
    "lt": ("Lietuvių", "LT"),
    "lv": ("Latviešu", "LV"),
    "mk": ("Македонски", "MK"),
    "mn": ("Монгол", "MN"),
    "mr": ("मराठी", "IN"),
    "ms": ("Bahasa Melayu", "MY"),
    "mt": ("Malti", "MT"),
    "ne": ("नेपाली", "NP"),
    "nl": ("Nederlands", "NL"),
    "nl-BE": ("Nederlands (België)", "BE"),
    "nb": ("Norsk bokmål", "NO"),
    "nn": ("Norsk nynorsk", "NO"),
    "no": ("Norsk", "NO"),
    "pa": ("ਪੰਜਾਬੀ", "IN"),
    "pl": ("Polski", "PL"),
    "pt": ("Português", "PT"),
    "pt-BR": ("Português (Brasil)", "BR"),
    "pt-PT": ("Português (Portugal)", "PT"),
    "ro": ("Română", "RO"),
    "ru": ("Русский", "RU"),
    "si": ("සිංහල", "LK"),
    "sk": ("Slovenčina", "SK"),
    "sl": ("Slovenščina", "SI"),
    "sq": ("Shqip", "AL"),
    "sr": ("Српски", "RS"),
    "sv": ("Svenska", "SE"),
    "sw": ("Kiswahili", "TZ"),
    "ta": ("தமிழ்", "IN"),
    "te": ("తెలుగు", "IN"),
    "th": ("ไทย", "TH"),
    "tr": ("Türkçe", "TR"),
    "uk": ("Українська", "UA"),
    "ur": ("اردو", "PK"),
    "uz": ("O'zbek", "UZ"),
    "vi": ("Tiếng Việt", "VN"),
    "zh": ("中文", "CN"),
    "zh-CN": ("简体中文", "CN"),
    "zh-TW": ("繁體中文", "TW"),
    "zu": ("isiZulu", "ZA"),
}

_NPLURALS_ONE = ("ja", "ko", "zh", "vi", "th", "id", "ms")
_EAST_SLAVIC = ("ru", "uk", "be", "hr", "sr", "bs")

_PLURAL_FORMS: Dict[str, str] = {
    "pl": "nplurals=3; plural=(n==1 ? 0 : n%10>=2 && n%10<=4 && (n%100<10 || n%100>=20) ? 1 : 2);",
    "cs": "nplurals=3; plural=(n==1 ? 0 : n>=2 && n<=4 ? 1 : 2);",
    "sk": "nplurals=3; plural=(n==1 ? 0 : n>=2 && n<=4 ? 1 : 2);",
    "ro": "nplurals=3; plural=(n==1 ? 0 : (n==0 || (n%100 > 0 && n%100 < 20)) ? 1 : 2);",
    "lt": "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : n%10>=2 && (n%100<10 || n%100>=20) ? 1 : 2);",
    "lv": "nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : n != 0 ? 1 : 2);",
    "ar": "nplurals=6; plural=(n==0 ? 0 : n==1 ? 1 : n==2 ? 2 : n%100>=3 && n%100<=10 ? 3 : n%100>=11 ? 4 : 5);",
    "fr": "nplurals=2; plural=(n > 1);",
    "pt": "nplurals=2; plural=(n > 1);",
}
DEFAULT_PLURAL_FORMS = "nplurals=2; plural=(n != 1);"

_NPLURALS_RE = re.compile(r"nplurals\s*=\s*(\d+)")


def canonicalize(language: str) -> str:
    """
    Normalize a language code to ``ll-RR`` form (``pt_br`` -> ``pt-BR``).

    Android qualifiers such as ``pt-rBR`` are accepted too.
    """
    normalized = language.strip().replace("_", "-")
    if not normalized:
        return ""
    parts = normalized.split("-")
    parts[0] = parts[0].lower()
    if len(parts) >= 2:
        region = parts[1]
        if len(region) == 3 and region[0] == "r":
            region = region[1:]
        parts[1] = region.upper()
    return "-".join(parts)


def base_language(language: str) -> str:
    return canonicalize(language).split("-", 1)[0]


def resolve(language: str) -> LanguageMeta:
    """
    Return best-effort display metadata for a language code.

    Tries the exact code, then its canonical form, then the base language.
    Unknown codes resolve to the code itself with no flag.
    """
    for candidate in (language, canonicalize(language), base_language(language)):
        if candidate in _REGISTRY:
            name, region = _REGISTRY[candidate]
            return LanguageMeta(name=name, flag=_flag(region))
    return LanguageMeta(name=language, flag="")


def native_name(language: str) -> str:
    return resolve(language).name


def plural_forms_for_lang(language: str) -> str:
    """Return the gettext ``Plural-Forms`` header value for a language."""
    base = base_language(language)
    if base in _NPLURALS_ONE:
        return "nplurals=1; plural=0;"
    if base in _EAST_SLAVIC:
        return ("nplurals=3; plural=(n%10==1 && n%100!=11 ? 0 : n%10>=2 && n%10<=4 && "
                "(n%100<10 || n%100>=20) ? 1 : 2);")
    return _PLURAL_FORMS.get(base, DEFAULT_PLURAL_FORMS)


def nplurals(plural_forms: Optional[str], default: int = 2) -> int:
    """Extract ``nplurals`` from a ``Plural-Forms`` header value."""
    if plural_forms:
        match = _NPLURALS_RE.search(plural_forms)
        if match:
            return int(match.group(1))
    return default


def underscore_locale(language: str) -> str:
    """``pt-BR`` -> ``pt_BR`` (gettext and Java resource bundles)."""
    return canonicalize(language).replace("-", "_")


def android_locale(language: str) -> str:
    """``pt-BR`` -> ``pt-rBR`` (Android ``values-`` qualifier)."""
    parts = canonicalize(language).split("-")
    if len(parts) >= 2 and len(parts[1]) == 2:
        return f"{parts[0]}-r{parts[1]}"
    return "-".join(parts)
