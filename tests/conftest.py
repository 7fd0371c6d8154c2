"""Test configuration and fixtures for Polystatic tests."""

import pytest
import tempfile
import shutil
import logging
from pathlib import Path
import yaml

from polystatic_pkg.settings import SiteConfig
from polystatic_pkg.localization import LessonTranslationTable

REFERENCE_CONFIG = {
    'title': 'The Incredible Rust',
    'description': 'Learn Rust Programming',
    'url': 'https://incrediblerust.github.io',
    'baseurl': '',
    'languages': ['en', 'pt', 'es'],
    'default_lang': 'en',
    'collections': {
        'lessons': {'output': True, 'permalink': '/:collection/:name/'},
        'lessons_pt': {'output': True, 'permalink': '/pt/:collection/:name/'},
        'lessons_es': {'output': True, 'permalink': '/es/:collection/:name/'},
    },
    'defaults': [
        {'scope': {'path': '', 'type': 'lessons'}, 'values': {'layout': 'lesson', 'lang': 'en'}},
        {'scope': {'path': '', 'type': 'lessons_pt'}, 'values': {'layout': 'lesson', 'lang': 'pt'}},
        {'scope': {'path': '', 'type': 'lessons_es'}, 'values': {'layout': 'lesson', 'lang': 'es'}},
    ],
    'exclude': ['src/', 'target/', 'Cargo.toml', 'Cargo.lock', 'templates/', 'drafts*'],
    'version': '1.0.0',
    'rust_version': '1.85.0',
}


def write(root, relative_path, text):
    path = Path(root) / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    return path


def lesson(title, difficulty='beginner', order=1, body='Some **bold** text.'):
    return f"""---
title: "{title}"
difficulty: {difficulty}
order: {order}
---

{body}
"""


@pytest.fixture(autouse=True)
def reset_polystatic_logger():
    """Keep handlers from one test's generator out of the next."""
    yield
    logger = logging.getLogger('Polystatic')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def site_config():
    """The three-language lesson site configuration."""
    return SiteConfig.from_dict(REFERENCE_CONFIG)


@pytest.fixture
def translation_table():
    return LessonTranslationTable()


@pytest.fixture
def content_root(temp_dir):
    """Create a complete source tree: config, layouts, data, lessons, pages, assets."""
    root = Path(temp_dir) / 'site'
    root.mkdir()

    (root / '_config.yml').write_text(yaml.safe_dump(REFERENCE_CONFIG), encoding='utf-8')

    write(root, '_layouts/default.html',
          '<html lang="{{ lang }}"><title>{{ page.title }}</title>'
          '{% for code, url in language_urls.items() %}<a hreflang="{{ code }}" href="{{ url }}"></a>{% endfor %}'
          '<main>{{ content }}</main>'
          '{% if collection_items %}{% for item in collection_items.lessons %}<li>{{ item.url }}</li>{% endfor %}{% endif %}'
          '</html>')
    write(root, '_layouts/lesson.html',
          '{% extends "default.html" %}')
    write(root, '_data/translations.yml', yaml.safe_dump({
        'en': {'site_title': 'The Incredible Rust'},
        'pt': {'site_title': 'O Incrível Rust'},
        'es': {'site_title': 'El Increíble Rust'},
    }, allow_unicode=True))

    write(root, '_lessons/hello-world.md', lesson('Hello World', order=1))
    write(root, '_lessons/variables.md', lesson('Variables', order=3))
    write(root, '_lessons/data-types.md', lesson('Data Types', order=4))
    write(root, '_lessons_pt/ola-mundo.md', lesson('Olá Mundo', 'iniciante', 1))
    write(root, '_lessons_pt/variaveis.md', lesson('Variáveis', 'iniciante', 3))
    write(root, '_lessons_es/hola-mundo.md', lesson('Hola Mundo', 'principiante', 1))

    write(root, 'index.md', '---\ntitle: Home\n---\n\nWelcome.\n')
    write(root, 'pt/index.md', '---\ntitle: Início\n---\n\nBem-vindo.\n')
    write(root, 'es/index.md', '---\ntitle: Inicio\n---\n\nBienvenido.\n')
    write(root, 'lessons/index.md', '---\ntitle: Lessons\n---\n')
    write(root, 'about.md', '---\ntitle: About\n---\n\nAbout us.\n')
    write(root, 'pt/about.md', '---\ntitle: Sobre\n---\n\nSobre nós.\n')

    write(root, 'assets/css/style.css', 'body { color: #222; }\n')
    write(root, 'robots.txt', 'User-agent: *\nAllow: /\n')

    # Never part of the site
    write(root, 'README.md', '# Readme\n')
    write(root, 'node_modules/pkg/readme.md', '# dependency\n')
    write(root, 'vendor/bundle/notes.md', '# vendored\n')
    write(root, 'Cargo.lock/stray.md', '# inside a lockfile-named directory\n')
    write(root, 'src/main.md', '# source\n')
    write(root, 'drafts-2024/wip.md', '# draft\n')

    return str(root)


@pytest.fixture
def output_dir(temp_dir):
    return str(Path(temp_dir) / 'output')
