import os
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import mistune
import yaml

from .errors import ContentIOError, ParseError, PathError
from .localization import (
    LessonTranslationTable,
    build_classification_rules,
    find_rule,
    get_file_path,
    language_urls,
    output_path,
)

logger = logging.getLogger('Polystatic.content')

MARKDOWN_EXTENSIONS = ('.md', '.markdown')
HTML_EXTENSIONS = ('.html', '.htm')
CONTENT_EXTENSIONS = MARKDOWN_EXTENSIONS + HTML_EXTENSIONS

FRONT_MATTER_FIELDS = (
    'title',
    'difficulty',
    'version',
    'prev_lesson',
    'prev_lesson_title',
    'next_lesson',
    'next_lesson_title',
    'layout',
    'lang',
)


def _as_text(value):
    """Keep strings, render numbers as text, drop everything else."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


@dataclass(frozen=True)
class FrontMatter:
    """Per-file metadata parsed from the YAML block at the top of a source file."""
    title: Optional[str] = None
    difficulty: Optional[str] = None
    version: Optional[str] = None
    prev_lesson: Optional[str] = None
    prev_lesson_title: Optional[str] = None
    next_lesson: Optional[str] = None
    next_lesson_title: Optional[str] = None
    layout: Optional[str] = None
    lang: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Any]) -> 'FrontMatter':
        known = {}
        extra = {}
        for key, value in data.items():
            key = str(key)
            if key in FRONT_MATTER_FIELDS:
                text = _as_text(value)
                if text is None:
                    logger.debug(f"Ignoring non-text value for front matter key '{key}': {value!r}")
                else:
                    known[key] = text
            else:
                extra[key] = value
        return cls(extra=MappingProxyType(extra), **known)

    def as_dict(self) -> Dict[str, Any]:
        """Known fields and unrecognized keys merged into one mapping for templates."""
        result = dict(self.extra)
        for name in FRONT_MATTER_FIELDS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result


@dataclass(frozen=True)
class ContentFile:
    """A source file resolved into metadata, HTML and its place in the site."""
    path: str
    relative_path: str
    front_matter: FrontMatter
    content: str
    html_content: str
    collection: Optional[str]
    language: str
    source_collection: Optional[str] = None

    @property
    def stem(self) -> str:
        return os.path.splitext(os.path.basename(self.relative_path))[0]

    @property
    def is_index(self) -> bool:
        return self.collection is None and self.stem == 'index'

    @property
    def layout(self) -> str:
        return self.front_matter.layout or 'default'

    def output_path(self, config) -> str:
        return output_path(self, config)

    def get_file_path(self, config) -> str:
        return get_file_path(self, config)

    def language_urls(self, config, table: LessonTranslationTable, published=None) -> Dict[str, str]:
        return language_urls(self, config, table, published)


def split_front_matter(text: str, path: Optional[str] = None) -> Tuple[Dict[Any, Any], str]:
    """
    Split a document into its front matter mapping and body.

    Front matter is present only when the first line is ``---``. It ends at
    the next line that is exactly ``---`` or ``...``. A document without
    front matter returns an empty mapping and the full text.
    """
    if text.startswith('\ufeff'):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != '---':
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].rstrip() in ('---', '...'):
            block = ''.join(lines[1:index])
            body = ''.join(lines[index + 1:])
            break
    else:
        raise ParseError("Front matter block is not closed", path)

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML front matter: {e}", path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("Front matter must be a mapping", path)
    return data, body.lstrip('\r\n')


class CodeBlockRenderer(mistune.HTMLRenderer):
    """HTML renderer that passes raw HTML through and tags fenced code with its language."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code, info=None):
        escaped_code = mistune.escape(code)
        if info and info.strip():
            lang = info.strip().split(None, 1)[0]
            return '<pre><code class="language-{}">{}</code></pre>\n'.format(mistune.escape(lang), escaped_code)
        return '<pre><code>{}</code></pre>\n'.format(escaped_code)


def create_markdown_parser():
    """Create a Mistune markdown parser with tables, strikethrough, footnotes and task lists."""
    return mistune.create_markdown(
        renderer=CodeBlockRenderer(),
        plugins=['table', 'strikethrough', 'footnotes', 'task_lists']
    )


class ContentResolver:
    """Turns files under a content root into ContentFile objects."""

    def __init__(self, content_root, config, table=None):
        self.content_root = os.path.abspath(content_root)
        self.config = config
        self.table = table or LessonTranslationTable.from_config(config)
        self.rules = build_classification_rules(config)
        self.markdown_parser = create_markdown_parser()

    def markdown_filter(self, text):
        """Convert markdown text to HTML."""
        return self.markdown_parser(text)

    def relative_path(self, path):
        """POSIX path of ``path`` relative to the content root."""
        abs_path = os.path.abspath(path)
        try:
            common = os.path.commonpath([self.content_root, abs_path])
        except ValueError:
            common = None
        if common != self.content_root or abs_path == self.content_root:
            raise PathError(f"Path is not inside content root {self.content_root}", abs_path)
        return os.path.relpath(abs_path, self.content_root).replace(os.sep, '/')

    def apply_defaults(self, data, relative_path, source_collection):
        """
        Fill keys missing from the front matter with the configured defaults.

        Later rules override earlier ones. The file's own values always win.
        """
        merged = {}
        for rule in self.config.defaults:
            if rule.matches(relative_path, source_collection):
                merged.update(rule.values)
        merged.update(data)
        return merged

    def resolve(self, path):
        """Read, parse and classify one source file."""
        abs_path = os.path.abspath(path)
        relative_path = self.relative_path(abs_path)

        try:
            with open(abs_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except (IOError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read content file {abs_path}: {e}")
            raise ContentIOError(f"Failed to read content file: {e}", abs_path) from e

        data, body = split_front_matter(text, abs_path)

        rule = find_rule(relative_path, self.rules)
        if rule is None:
            collection, language, source_collection = None, self.config.get_default_lang(), None
        else:
            collection, language, source_collection = rule.collection, rule.language, rule.source_collection

        front_matter = FrontMatter.from_mapping(
            self.apply_defaults(data, relative_path, source_collection)
        )
        # A collection or language directory fixes the language; lang only places unclassified pages
        if front_matter.lang and front_matter.lang != language:
            if rule is not None:
                logger.debug(f"Keeping '{language}' from the path of {relative_path} over lang '{front_matter.lang}'")
            elif front_matter.lang in self.config.get_languages():
                language = front_matter.lang
            else:
                logger.warning(f"Ignoring unknown language '{front_matter.lang}' in {relative_path}")

        if abs_path.lower().endswith(HTML_EXTENSIONS):
            html_content = body
        else:
            html_content = self.markdown_filter(body)

        return ContentFile(
            path=abs_path,
            relative_path=relative_path,
            front_matter=front_matter,
            content=body,
            html_content=html_content,
            collection=collection,
            language=language,
            source_collection=source_collection,
        )


def resolve(path, content_root, config, table=None):
    """Resolve a single file without keeping a resolver around."""
    return ContentResolver(content_root, config, table).resolve(path)
