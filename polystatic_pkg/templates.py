"""
Jinja2 rendering of resolved content files.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError
from jinja2 import TemplateError as JinjaTemplateError

from .errors import ContentIOError, ParseError, TemplateError
from .localization import LessonTranslationTable

logger = logging.getLogger('Polystatic.templates')

PACKAGE_LAYOUTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'layouts')
DATA_EXTENSIONS = ('.yml', '.yaml', '.json')


def load_data_files(data_dir: str) -> Dict[str, Any]:
    """Load every YAML/JSON file in ``data_dir`` keyed by its file stem."""
    data = {}
    if not os.path.isdir(data_dir):
        return data

    for filename in sorted(os.listdir(data_dir)):
        stem, ext = os.path.splitext(filename)
        if ext.lower() not in DATA_EXTENSIONS:
            continue
        file_path = os.path.join(data_dir, filename)
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                if ext.lower() == '.json':
                    data[stem] = json.load(f)
                else:
                    data[stem] = yaml.safe_load(f)
        except (IOError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read data file {file_path}: {e}")
            raise ContentIOError(f"Failed to read data file: {e}", file_path) from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            logger.error(f"Invalid data file {file_path}: {e}")
            raise ParseError(f"Invalid data file: {e}", file_path) from e
    return data


@dataclass(frozen=True)
class SiteData:
    """Read-only state shared by every render: config, data bundle and slug table."""
    config: Any
    table: LessonTranslationTable
    data: Dict[str, Any] = field(default_factory=dict)

    def translations_for(self, lang: str) -> Optional[Dict[str, Any]]:
        translations = self.data.get('translations')
        if isinstance(translations, dict):
            return translations.get(lang)
        return None


class TemplateRenderer:
    """Builds rendering contexts and renders them through Jinja2 layouts."""

    def __init__(self, source_dir, site_data, layouts_dir=None):
        self.source_dir = source_dir
        self.site_data = site_data
        self.config = site_data.config
        # URLs the current build writes; None renders links without that check
        self.published_urls = None

        search_path = []
        site_layouts = layouts_dir or os.path.join(source_dir, '_layouts')
        if os.path.isdir(site_layouts):
            search_path.append(site_layouts)
        else:
            logger.debug(f"No layouts directory at {site_layouts}; using packaged layouts")
        search_path.append(PACKAGE_LAYOUTS_DIR)

        self.env = Environment(loader=FileSystemLoader(search_path))
        self.env.filters['relative_url'] = self.relative_url
        self.env.filters['absolute_url'] = self.absolute_url

    @classmethod
    def for_site(cls, source_dir, config, table=None, layouts_dir=None):
        """Load the ``_data`` bundle and build a renderer for a content root."""
        site_data = SiteData(
            config=config,
            table=table or LessonTranslationTable.from_config(config),
            data=load_data_files(os.path.join(source_dir, '_data')),
        )
        return cls(source_dir, site_data, layouts_dir=layouts_dir)

    def relative_url(self, url):
        if isinstance(url, str) and url.startswith('/'):
            return f"{self.config.baseurl}{url}"
        return url

    def absolute_url(self, url):
        if not isinstance(url, str):
            return url
        return f"{self.config.url or ''}{self.relative_url(url)}"

    def build_context(self, content_file, **extra):
        """Assemble the variables a layout sees for one page."""
        page = content_file.front_matter.as_dict()
        page.update({
            'url': content_file.output_path(self.config),
            'lang': content_file.language,
            'collection': content_file.collection,
            'slug': content_file.stem,
        })
        context = {
            'page': page,
            'content': content_file.html_content,
            'site': self.config.as_template_dict(),
            'data': self.site_data.data,
            'lang': content_file.language,
            'language_urls': content_file.language_urls(self.config, self.site_data.table, self.published_urls),
            'base_url': self.config.baseurl,
        }
        translations = self.site_data.translations_for(content_file.language)
        if translations is not None:
            context['t'] = translations
        context.update(extra)
        return context

    def render_content(self, content_file, **extra):
        """Render a content file through its layout, ``default`` unless front matter names one."""
        context = self.build_context(content_file, **extra)
        return self.render_page(f"{content_file.layout}.html", context, content_file.path)

    def render_page(self, template_name, context, path=None):
        """Render a Jinja2 template."""
        try:
            template = self.env.get_template(template_name)
            return template.render(**context)
        except TemplateNotFound as e:
            logger.error(f"Layout not found: {e}")
            raise TemplateError(f"Layout '{template_name}' not found", path) from e
        except TemplateSyntaxError as e:
            logger.error(f"Template syntax error in {e.filename or template_name}: {e}")
            raise TemplateError(f"Syntax error in layout '{template_name}' line {e.lineno}: {e.message}", path) from e
        except JinjaTemplateError as e:
            logger.error(f"Template error rendering {template_name}: {e}")
            raise TemplateError(f"Failed to render layout '{template_name}': {e}", path) from e
