"""
Language and collection classification, output paths and cross-language URLs.

A source file's language and collection come from its path relative to the
content root. An ordered list of prefix rules is checked, and the first
match wins. Localized collection directories (``_lessons_pt``) come before
the base directory (``_lessons``), which in turn comes before the generic
language directories (``pt/``). The checks are plain string prefix tests
on the POSIX path.

Cross-language URLs for lessons go through a lesson translation table that
maps each language's localized slugs to the canonical slug of the default
language.
"""

import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger('Polystatic.localization')

# localized slug -> canonical slug, per language
DEFAULT_LESSON_SLUGS = {
    'pt': {
        'ola-mundo': 'hello-world',
        'instalacao': 'installation',
        'variaveis': 'variables',
        'tipos-de-dados': 'data-types',
        'cargo': 'cargo',
    },
    'es': {
        'hola-mundo': 'hello-world',
        'instalacion': 'installation',
        'variables': 'variables',
        'cargo': 'cargo',
    },
}


@dataclass(frozen=True)
class ClassificationRule:
    """One step of the prefix cascade: a path prefix and what it implies."""
    prefix: str
    collection: Optional[str]
    language: str

    def matches(self, relative_path: str) -> bool:
        return relative_path.startswith(self.prefix)

    @property
    def source_collection(self) -> Optional[str]:
        """Directory-level collection key, ``lessons_pt`` for ``_lessons_pt``."""
        if self.collection is None:
            return None
        return self.prefix.lstrip('_')


def build_classification_rules(config) -> Tuple[ClassificationRule, ...]:
    """
    Build the ordered prefix cascade for a site configuration.

    Localized collection directories come first, then base collection
    directories, then top-level language directories. Within a group,
    longer prefixes are tried first. Configuration order decides between
    prefixes of the same length.
    """
    default_lang = config.get_default_lang()
    others = [lang for lang in config.get_languages() if lang != default_lang]
    bases = config.base_collections()

    localized = [
        ClassificationRule(f'_{name}_{lang}', name, lang)
        for name in bases for lang in others
    ]
    base = [ClassificationRule(f'_{name}', name, default_lang) for name in bases]
    generic = [ClassificationRule(f'{lang}/', None, lang) for lang in others]

    rules = []
    for group in (localized, base, generic):
        rules.extend(sorted(group, key=lambda rule: -len(rule.prefix)))
    return tuple(rules)


def find_rule(relative_path: str, rules) -> Optional[ClassificationRule]:
    """Return the first rule whose prefix matches, or None."""
    for rule in rules:
        if rule.matches(relative_path):
            return rule
    return None


def classify(relative_path: str, rules, default_lang: str = 'en') -> Tuple[Optional[str], str]:
    """Classify a relative path into ``(collection, language)``."""
    rule = find_rule(relative_path, rules)
    if rule is None:
        return None, default_lang
    return rule.collection, rule.language


class LessonTranslationTable:
    """
    Read-only mapping between localized lesson slugs and canonical slugs.

    Both directions are resolved first-definition-wins. If two localized
    slugs of one language map to the same canonical slug, the forward
    lookup returns the one defined first.
    """

    def __init__(self, slugs: Mapping[str, Mapping[str, str]] = None):
        self._to_canonical: Dict[str, Dict[str, str]] = {}
        self._to_localized: Dict[str, Dict[str, str]] = {}
        for lang, mapping in (slugs if slugs is not None else DEFAULT_LESSON_SLUGS).items():
            reverse = self._to_canonical.setdefault(lang, {})
            forward = self._to_localized.setdefault(lang, {})
            for localized_slug, canonical_slug in mapping.items():
                reverse.setdefault(localized_slug, canonical_slug)
                if canonical_slug in forward:
                    logger.debug(
                        f"Slug '{localized_slug}' ({lang}) duplicates canonical '{canonical_slug}'; "
                        f"keeping '{forward[canonical_slug]}'"
                    )
                    continue
                forward[canonical_slug] = localized_slug

    @classmethod
    def from_config(cls, config) -> 'LessonTranslationTable':
        return cls(config.lesson_slugs)

    def canonical(self, lang: str, slug: str) -> Optional[str]:
        """Canonical slug for a localized slug, or None if unknown."""
        return self._to_canonical.get(lang, {}).get(slug)

    def localized(self, lang: str, canonical_slug: str) -> Optional[str]:
        """Localized slug for a canonical slug, or None if unknown."""
        return self._to_localized.get(lang, {}).get(canonical_slug)

    def languages(self) -> List[str]:
        return list(self._to_canonical)


def _language_segments(lang: str, config) -> List[str]:
    prefix = config.language_prefix(lang)
    return [prefix.rstrip('/')] if prefix else []


def _standalone_tail(content_file, config) -> List[str]:
    """Directory segments below the language directory, plus the stem unless it is ``index``."""
    directory = posixpath.dirname(content_file.relative_path)
    segments = [segment for segment in directory.split('/') if segment]
    if segments and segments[0] in config.get_languages() and segments[0] != config.get_default_lang():
        segments = segments[1:]
    if content_file.stem != 'index':
        segments.append(content_file.stem)
    return segments


def url_segments(content_file, config) -> List[str]:
    """Path segments shared by the page URL and its on-disk location."""
    segments = _language_segments(content_file.language, config)
    if content_file.collection:
        return segments + [content_file.collection, content_file.stem]
    return segments + _standalone_tail(content_file, config)


def _segments_to_url(segments) -> str:
    if not segments:
        return '/'
    return '/' + '/'.join(segments) + '/'


def output_path(content_file, config) -> str:
    """Clean URL of a page, e.g. ``/pt/lessons/variaveis/`` or ``/about/``."""
    return _segments_to_url(url_segments(content_file, config))


def get_file_path(content_file, config) -> str:
    """On-disk location relative to the output root, always ending in ``index.html``."""
    return posixpath.join(*url_segments(content_file, config), 'index.html')


def nearest_published(url: str, published, root: str) -> str:
    """Closest published ancestor of ``url``, walking up no further than ``root``."""
    segments = [segment for segment in url.split('/') if segment]
    root_depth = len([segment for segment in root.split('/') if segment])
    while len(segments) > root_depth:
        candidate = _segments_to_url(segments)
        if candidate in published:
            return candidate
        segments.pop()
    return root


def language_urls(content_file, config, table: LessonTranslationTable, published=None) -> Dict[str, str]:
    """
    URL of the equivalent page in every configured language.

    Lessons resolve through the translation table. If no translation is
    known, the target language's collection index is used. Standalone
    pages are positional: the same sub-path under each language prefix.

    When ``published`` holds the set of URLs the build writes, a target
    that is not in it degrades to its nearest published ancestor, down to
    the language root.
    """
    default_lang = config.get_default_lang()
    urls = {}

    if content_file.collection:
        collection = content_file.collection
        if content_file.language == default_lang:
            canonical = content_file.stem
        else:
            canonical = table.canonical(content_file.language, content_file.stem)
            if canonical is None:
                logger.debug(
                    f"No canonical slug for '{content_file.stem}' ({content_file.language}); "
                    "other languages fall back to their lesson index"
                )

        for lang in config.get_languages():
            prefix = _language_segments(lang, config)
            if lang == content_file.language:
                urls[lang] = output_path(content_file, config)
                continue
            slug = None
            if canonical is not None:
                slug = canonical if lang == default_lang else table.localized(lang, canonical)
            if slug:
                urls[lang] = _segments_to_url(prefix + [collection, slug])
            else:
                urls[lang] = _segments_to_url(prefix + [collection])
    else:
        tail = _standalone_tail(content_file, config)
        for lang in config.get_languages():
            urls[lang] = _segments_to_url(_language_segments(lang, config) + tail)

    if published is not None:
        for lang, url in urls.items():
            if lang != content_file.language and url not in published:
                urls[lang] = nearest_published(url, published, _segments_to_url(_language_segments(lang, config)))
    return urls
