from typing import Dict, List, Set, Tuple, Union
import re
from collections import Counter

# {0}, {name}; {{var}} is matched separately so it is not counted twice.
BRACE_PLACEHOLDER_RE = re.compile(r'(?<!\{)\{([^{}]+)\}(?!\})')
DOUBLE_BRACE_PLACEHOLDER_RE = re.compile(r'\{\{\s*([^{}]+?)\s*\}\}')
# %s, %d, %1$s, %(name)s, %.2f; "%%" is a literal percent sign.
PRINTF_PLACEHOLDER_RE = re.compile(r'%(?:\d+\$|\([A-Za-z_][A-Za-z0-9_]*\))?[-+#0]*\d*(?:\.\d+)?[sdifuxXeEgGc@]')

MOJIBAKE_RE = re.compile(r'Ã[\x80-\xff]')
REPLACEMENT_CHARACTER = '\uFFFD'


def check_key_coverage(base_keys: Set[str], target_keys: Set[str]) -> Tuple[Set[str], Set[str]]:
    """
    Compares the keys in a target document against the source document.

    Args:
        base_keys: A set of translatable keys from the source document.
        target_keys: A set of translatable keys from the target document.

    Returns:
        A tuple containing two sets:
        - missing_keys: Keys present in the source but missing from the target.
        - extra_keys: Keys present in the target but absent from the source.
    """
    missing_keys = base_keys - target_keys
    extra_keys = target_keys - base_keys
    return missing_keys, extra_keys


def extract_placeholders(text: str) -> Counter:
    """Count the brace, double-brace and printf placeholders in ``text``."""
    text_without_percent_literals = text.replace('%%', '')
    placeholders = Counter()
    placeholders.update('{' + name + '}' for name in BRACE_PLACEHOLDER_RE.findall(text))
    placeholders.update('{{' + name + '}}' for name in DOUBLE_BRACE_PLACEHOLDER_RE.findall(text))
    placeholders.update(PRINTF_PLACEHOLDER_RE.findall(text_without_percent_literals))
    return placeholders


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the set of placeholders is identical between a source and a target string.
    Recognizes {0}/{name}, {{name}} and printf-style %s, %1$s, %(name)s.
    This function allows for reordering of placeholders.

    Args:
        base_string: The source-language string.
        target_string: The translated string.

    Returns:
        True if the placeholders in both strings are identical, False otherwise.
    """
    return extract_placeholders(base_string) == extract_placeholders(target_string)


def validate_translation(source: Union[str, List[str], Dict], translation: Union[str, List[str], Dict]) -> List[str]:
    """
    Check a translation against the source value it was produced from.

    Strings are compared directly, lists item by item and plural mappings
    form by form. A language may need more or fewer plural forms than the
    source, so each translated form only has to match one of the source forms.

    Returns:
        A list of error messages. An empty list means the translation is usable.
    """
    errors = []
    if isinstance(source, str):
        if not isinstance(translation, str):
            return [f"Expected a string translation, got {type(translation).__name__}"]
        if not check_placeholder_parity(source, translation):
            errors.append(f"Placeholder mismatch: expected {sorted(extract_placeholders(source).elements())}, "
                          f"got {sorted(extract_placeholders(translation).elements())}")
        if REPLACEMENT_CHARACTER in translation:
            errors.append("Translation contains the Unicode replacement character")
        return errors

    if isinstance(source, list):
        if not isinstance(translation, list):
            return [f"Expected a list translation, got {type(translation).__name__}"]
        if len(source) != len(translation):
            return [f"Expected {len(source)} items, got {len(translation)}"]
        for index, (source_item, translated_item) in enumerate(zip(source, translation)):
            errors.extend(f"item {index}: {error}" for error in validate_translation(source_item, translated_item))
        return errors

    if not isinstance(translation, dict):
        return [f"Expected a plural mapping, got {type(translation).__name__}"]
    if not translation:
        return ["Plural translation has no forms"]
    source_forms = [form for form in source.values() if isinstance(form, str)]
    for quantity, form in translation.items():
        if not isinstance(form, str):
            errors.append(f"form {quantity}: expected a string, got {type(form).__name__}")
            continue
        if source_forms and not any(check_placeholder_parity(source_form, form) for source_form in source_forms):
            errors.append(f"form {quantity}: placeholders do not match any source form")
        if REPLACEMENT_CHARACTER in form:
            errors.append(f"form {quantity}: contains the Unicode replacement character")
    return errors


def check_text_for_mojibake(content: str, label: str = "content") -> List[str]:
    """Look for mis-decoded UTF-8 and replacement characters in already decoded text."""
    errors = []
    # 'Ã' followed by a character in 0x80-0xFF is a strong indicator of UTF-8
    # text that was decoded as latin-1 or cp1252.
    if MOJIBAKE_RE.search(content):
        errors.append(f"Potential mojibake detected in '{label}'. Found patterns like 'Ã¼', 'Ã¤', etc.")
    if REPLACEMENT_CHARACTER in content:
        errors.append(f"'{label}' contains the official Unicode replacement character (\uFFFD), "
                      f"indicating a previous encoding/decoding error.")
    return errors


def check_encoding_and_mojibake(file_path: str) -> List[str]:
    """
    Checks a file for UTF-8 encoding and common mojibake patterns.

    Args:
        file_path: The path to the file to check.

    Returns:
        A list of string error messages. An empty list means the file is valid.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()
    except UnicodeDecodeError:
        return [f"File '{file_path}' is not a valid UTF-8 file."]
    except OSError as e:
        return [f"Could not read file '{file_path}'. Reason: {e}"]

    return check_text_for_mojibake(content, file_path)
