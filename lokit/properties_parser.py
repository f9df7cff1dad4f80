import re
from typing import Dict, List, Tuple

from lokit.adapters import FormatAdapter
from lokit.errors import ResourceParseError
from lokit.resource_model import ResourceDocument, StructuralElement, TranslationUnit


def _has_unescaped_trailing_backslash(s: str) -> bool:
    """Check if a string ends with an odd number of backslashes."""
    if not s.endswith('\\'):
        return False
    # Count trailing backslashes
    count = 0
    i = len(s) - 1
    while i >= 0 and s[i] == '\\':
        count += 1
        i -= 1
    # An odd number of trailing backslashes indicates an unescaped one
    return count % 2 == 1


def _find_separator(line: str) -> int:
    """Return the index of the first unescaped ':' or '=', or -1."""
    for j, char in enumerate(line):
        if char in (':', '='):
            backslash_count = 0
            k = j - 1
            while k >= 0 and line[k] == '\\':
                backslash_count += 1
                k -= 1
            if backslash_count % 2 == 0:
                return j
    return -1


_KEY_ESCAPE_RE = re.compile(r'\\([:=\s\\])')


def _unescape_key(key_raw: str) -> str:
    return _KEY_ESCAPE_RE.sub(r'\1', key_raw)


def _split_entry(line: str) -> Tuple[str, str, str]:
    """
    Split an entry line into (raw key, separator with its surrounding whitespace, value).

    A line without an unescaped separator is a bare key with an empty separator.
    """
    sep_index = _find_separator(line)
    if sep_index == -1:
        return line.strip(), '', ''

    start = sep_index
    while start > 0 and line[start - 1].isspace():
        start -= 1
    end = sep_index
    while end < len(line) - 1 and line[end + 1].isspace():
        end += 1
    return line[:start].strip(), line[start:end + 1], line[end + 1:]


def parse_properties(content: str) -> Tuple[List[Dict], Dict[str, str]]:
    """
    Parse the content of a .properties file.

    Comments and blank lines are kept verbatim so the file can be written back
    unchanged; continuation lines are joined into a single value.

    Args:
        content (str): The file content.

    Returns:
        Tuple[List[Dict], Dict[str, str]]: A list of parsed lines and a dictionary of key to value.
    """
    lines = content.splitlines(keepends=True)

    parsed_lines = []
    translations = {}
    i = 0
    while i < len(lines):
        line = lines[i].rstrip('\r\n')
        if not line.strip() or line.lstrip().startswith(('#', '!')):
            parsed_lines.append({'type': 'comment_or_blank', 'content': lines[i]})
            i += 1
            continue

        key_raw, separator_group, value = _split_entry(line)
        key = _unescape_key(key_raw)
        line_number = i
        original_value_lines = [value]
        was_multiline = False

        i += 1
        while _has_unescaped_trailing_backslash(value) and i < len(lines):
            was_multiline = True
            continuation = lines[i].rstrip('\r\n')
            original_value_lines.append(continuation)
            value = value[:-1] + continuation.lstrip()
            i += 1
        if _has_unescaped_trailing_backslash(value):
            # Continuation at end of file
            was_multiline = True
            value = value[:-1]

        translations[key] = value
        parsed_lines.append({
            'type': 'entry',
            'key': key,
            'key_raw': key_raw,
            'value': value,
            'original_value': ''.join(original_value_lines),
            'line_number': line_number,
            'was_multiline': was_multiline,
            'separator_group': separator_group
        })
    return parsed_lines, translations


def reassemble_file(parsed_lines: List[Dict]) -> str:
    """
    Reassemble the file content from parsed lines.

    Args:
        parsed_lines (List[Dict]): The parsed lines.

    Returns:
        str: The reassembled file content.
    """
    lines = []
    for item in parsed_lines:
        if item['type'] == 'entry':
            value = item['value']
            key = item.get('key_raw') or item['key']
            # A bare key has no separator until it gets a value.
            separator_group = item.get('separator_group', '=') or ('=' if value else '')

            # Preserve original formatting if possible
            if '\\n' in item.get('original_value', ''):
                # Use escaped newline characters
                value = value.replace('\n', '\\n')
                line = f"{key}{separator_group}{value}\n"
            elif '\n' in value or item.get('was_multiline', False):
                # Handle multiline values with line continuations
                lines_value = value.split('\n')
                formatted_value = '\\\n'.join(lines_value)
                line = (f"{key}{separator_group}"
                        f"{formatted_value}\n")
            else:
                line = f"{key}{separator_group}{value}\n"
            lines.append(line)
        else:
            lines.append(item['content'])
    return ''.join(lines)


class PropertiesAdapter(FormatAdapter):
    """Java .properties resource bundles."""

    type_name = "properties"
    extensions = (".properties",)

    def parse(self, data: bytes) -> ResourceDocument:
        try:
            content = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ResourceParseError(f"not valid UTF-8: {e}") from e

        parsed_lines, _ = parse_properties(content)
        document = ResourceDocument()
        for item in parsed_lines:
            if item['type'] == 'entry':
                if document.unit(item['key']) is not None:
                    raise ResourceParseError(
                        f"duplicate key '{item['key']}' on line {item['line_number'] + 1}")
                document.add_unit(TranslationUnit(
                    key=item['key'],
                    value=item['value'],
                    hints={
                        'key_raw': item['key_raw'],
                        'separator_group': item['separator_group'],
                        'original_value': item['original_value'],
                        'was_multiline': item['was_multiline'],
                    },
                ))
            else:
                document.append(StructuralElement('comment_or_blank', item['content']))
        return document

    def marshal(self, document: ResourceDocument) -> bytes:
        parsed_lines = []
        for element in document.elements:
            if isinstance(element, TranslationUnit):
                parsed_lines.append({
                    'type': 'entry',
                    'key': element.key,
                    'key_raw': element.hints.get('key_raw', element.key),
                    'value': element.value,
                    'original_value': element.hints.get('original_value', ''),
                    'was_multiline': element.hints.get('was_multiline', False),
                    'separator_group': element.hints.get('separator_group', '='),
                })
            else:
                parsed_lines.append({'type': 'comment_or_blank', 'content': element.text})
        return reassemble_file(parsed_lines).encode('utf-8')
