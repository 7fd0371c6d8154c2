#!/usr/bin/env python3
"""
Settings loader for the Polystatic site generator.
Supports configuration from _config.yml, _config.yaml, or _config.json files.
"""

import os
import json
import logging
import yaml
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from .errors import ContentIOError, ParseError

logger = logging.getLogger('Polystatic.settings')


@dataclass(frozen=True)
class CollectionConfig:
    """Output settings for one named collection."""
    output: bool = True
    permalink: Optional[str] = None


@dataclass(frozen=True)
class DefaultRule:
    """Front matter values applied to every file inside a scope."""
    scope_path: str = ''
    scope_type: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)

    def matches(self, relative_path: str, source_collection: Optional[str]) -> bool:
        """
        Check whether a file falls inside this rule's scope.

        An empty scope path matches everything. A scope type matches the
        directory-level collection key (``lessons_pt`` for ``_lessons_pt/``),
        or ``pages`` for files outside any collection.
        """
        if self.scope_path and not relative_path.startswith(self.scope_path):
            return False
        if self.scope_type is None:
            return True
        if self.scope_type == 'pages':
            return source_collection is None
        return self.scope_type == source_collection


@dataclass(frozen=True)
class SiteConfig:
    """Site-wide settings read once from the configuration document."""
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    baseurl: str = ''
    languages: Tuple[str, ...] = ('en',)
    default_lang: str = 'en'
    collections: Dict[str, CollectionConfig] = field(default_factory=dict)
    defaults: Tuple[DefaultRule, ...] = ()
    exclude: Tuple[str, ...] = ()
    lesson_slugs: Optional[Dict[str, Dict[str, str]]] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    source_path: Optional[str] = None

    def get_languages(self) -> List[str]:
        return list(self.languages)

    def get_default_lang(self) -> str:
        return self.default_lang

    def is_collection(self, name: str) -> bool:
        return name in self.collections

    def get_collection_config(self, name: str) -> Optional[CollectionConfig]:
        return self.collections.get(name)

    def base_collections(self) -> List[str]:
        """
        Collection names that are not a localized variant of another one.

        ``lessons_pt`` is a variant when ``lessons`` is configured and ``pt``
        is a configured language.
        """
        bases = []
        for name in self.collections:
            if self._variant_base(name) is None:
                bases.append(name)
        return bases

    def _variant_base(self, name: str) -> Optional[str]:
        for lang in self.languages:
            suffix = f'_{lang}'
            if name.endswith(suffix):
                base = name[:-len(suffix)]
                if base and base in self.collections:
                    return base
        return None

    def language_prefix(self, lang: str) -> str:
        """Path prefix for a language: empty for the default, ``pt/`` otherwise."""
        if lang == self.default_lang:
            return ''
        return f'{lang}/'

    def as_template_dict(self) -> Dict[str, Any]:
        """Flatten the config into the ``site`` variable seen by layouts."""
        site = dict(self.extra)
        site.update({
            'title': self.title,
            'description': self.description,
            'url': self.url,
            'baseurl': self.baseurl,
            'languages': list(self.languages),
            'default_lang': self.default_lang,
            'collections': {
                name: {'output': c.output, 'permalink': c.permalink}
                for name, c in self.collections.items()
            },
            'exclude': list(self.exclude),
        })
        return site

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], source_path: Optional[str] = None) -> 'SiteConfig':
        """Build a config from a parsed document, applying defaults."""
        if not isinstance(raw, dict):
            raise ParseError("Configuration document must be a mapping", source_path)

        known = dict(SiteSettings.DEFAULT_SETTINGS)
        known.update({k: v for k, v in raw.items() if v is not None})

        default_lang = str(known['default_lang'])
        raw_languages = known['languages'] or []
        if isinstance(raw_languages, str):
            raw_languages = [raw_languages]
        if not isinstance(raw_languages, (list, tuple)):
            raise ParseError("'languages' must be a list of language codes", source_path)
        languages = [str(lang) for lang in raw_languages]
        if not languages:
            languages = [default_lang]
        if default_lang not in languages:
            languages.insert(0, default_lang)

        collections = {}
        raw_collections = known['collections'] or {}
        if not isinstance(raw_collections, dict):
            raise ParseError("'collections' must be a mapping", source_path)
        for name, options in raw_collections.items():
            options = options or {}
            if not isinstance(options, dict):
                raise ParseError(f"Collection '{name}' must be a mapping", source_path)
            collections[str(name)] = CollectionConfig(
                output=bool(options.get('output', True)),
                permalink=options.get('permalink'),
            )

        defaults = []
        for entry in known['defaults'] or []:
            if not isinstance(entry, dict):
                raise ParseError("Each 'defaults' entry must be a mapping", source_path)
            scope = entry.get('scope') or {}
            if not isinstance(scope, dict):
                raise ParseError("A 'defaults' scope must be a mapping", source_path)
            if not isinstance(entry.get('values') or {}, dict):
                raise ParseError("'defaults' values must be a mapping", source_path)
            defaults.append(DefaultRule(
                scope_path=str(scope.get('path') or ''),
                scope_type=scope.get('type'),
                values=dict(entry.get('values') or {}),
            ))

        lesson_slugs = known['lesson_slugs']
        if lesson_slugs is not None:
            if not isinstance(lesson_slugs, dict) or not all(isinstance(v, dict) for v in lesson_slugs.values()):
                raise ParseError("'lesson_slugs' must map languages to slug mappings", source_path)
            lesson_slugs = {
                str(lang): {str(k): str(v) for k, v in mapping.items()}
                for lang, mapping in lesson_slugs.items()
            }

        extra = {k: v for k, v in raw.items() if k not in SiteSettings.DEFAULT_SETTINGS}

        return cls(
            title=known['title'],
            description=known['description'],
            url=known['url'].rstrip('/') if known['url'] else None,
            baseurl=(known['baseurl'] or '').rstrip('/'),
            languages=tuple(languages),
            default_lang=default_lang,
            collections=collections,
            defaults=tuple(defaults),
            exclude=tuple(str(pattern) for pattern in known['exclude'] or []),
            lesson_slugs=lesson_slugs,
            extra=extra,
            source_path=source_path,
        )


class SiteSettings:
    """Load and manage Polystatic configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'title': None,
        'description': None,
        'url': None,
        'baseurl': '',
        'languages': ['en'],
        'default_lang': 'en',
        'collections': {},
        'defaults': [],
        'exclude': [],
        'lesson_slugs': None,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['_config.yml', '_config.yaml', '_config.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.config_file_path = None

    def load_settings(self, config_path: Optional[str] = None) -> SiteConfig:
        """
        Load settings from a configuration file.

        An explicit ``config_path`` must exist. Without one, the first of
        CONFIG_FILES found in ``config_dir`` is used, and a site with no
        config file at all gets the defaults.

        Returns:
            The parsed SiteConfig
        """
        if config_path:
            if not os.path.isabs(config_path):
                config_path = os.path.join(self.config_dir, config_path)
            if not os.path.exists(config_path):
                raise ContentIOError("Configuration file not found", config_path)
        else:
            config_path = self._find_config_file()

        if not config_path:
            logger.warning(f"No configuration file found in {self.config_dir}; using defaults")
            return SiteConfig.from_dict({})

        self.config_file_path = config_path
        loaded = self._load_config_file(config_path)
        logger.info(f"Loaded configuration from: {os.path.relpath(config_path)}")
        return SiteConfig.from_dict(loaded, source_path=config_path)

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    return yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    return json.load(f) or {}
                else:
                    raise ParseError(f"Unsupported config file format: {file_ext}", config_path)
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML in configuration file {config_path}: {e}")
            raise ParseError(f"Invalid YAML in configuration file: {e}", config_path) from e
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file {config_path}: {e}")
            raise ParseError(f"Invalid JSON in configuration file: {e}", config_path) from e
        except (IOError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading configuration file {config_path}: {e}")
            raise ContentIOError(f"Error reading configuration file: {e}", config_path) from e

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        sample_config = {
            'title': 'My Multilingual Site',
            'description': 'Lessons in three languages, built with Polystatic',
            'url': 'https://example.com',
            'baseurl': '',
            'languages': ['en', 'pt', 'es'],
            'default_lang': 'en',
            'collections': {
                'lessons': {'output': True, 'permalink': '/:collection/:name/'},
                'lessons_pt': {'output': True, 'permalink': '/pt/:collection/:name/'},
                'lessons_es': {'output': True, 'permalink': '/es/:collection/:name/'},
            },
            'defaults': [
                {'scope': {'path': '', 'type': name}, 'values': {'layout': 'lesson', 'lang': lang}}
                for name, lang in (('lessons', 'en'), ('lessons_pt', 'pt'), ('lessons_es', 'es'))
            ],
            'exclude': ['README.md', 'LICENSE', 'node_modules'],
        }

        filename = f'_config.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    f.write("# Polystatic Configuration File\n")
                    f.write("# Site information, languages and collections\n\n")
                    yaml.safe_dump(sample_config, f, sort_keys=False, allow_unicode=True)
                elif file_format == 'json':
                    json.dump(sample_config, f, indent=2)
                else:
                    raise ParseError(f"Unsupported config file format: {file_format}", config_path)
        except (IOError, OSError) as e:
            raise ContentIOError(f"Error writing configuration file: {e}", config_path) from e

        return config_path


def load_site_config(config_dir: str, config_path: Optional[str] = None) -> SiteConfig:
    """Load the site configuration for a content root."""
    return SiteSettings(config_dir).load_settings(config_path)
