"""Tests for path classification, output paths and cross-language URLs."""

import pytest

from polystatic_pkg.content import ContentFile, FrontMatter
from polystatic_pkg.localization import (
    ClassificationRule,
    LessonTranslationTable,
    build_classification_rules,
    classify,
    get_file_path,
    language_urls,
    nearest_published,
    output_path,
)
from polystatic_pkg.settings import SiteConfig


def make_file(relative_path, collection=None, language='en'):
    """Build a ContentFile without touching the filesystem."""
    return ContentFile(
        path='/site/' + relative_path,
        relative_path=relative_path,
        front_matter=FrontMatter(),
        content='',
        html_content='',
        collection=collection,
        language=language,
    )


class TestClassificationRules:
    """Test cases for the ordered prefix cascade."""

    def test_rule_order(self, site_config):
        """Localized collections, then the base collection, then language directories."""
        rules = build_classification_rules(site_config)
        assert [rule.prefix for rule in rules] == ['_lessons_pt', '_lessons_es', '_lessons', 'pt/', 'es/']

    def test_variant_collections_are_not_bases(self, site_config):
        """lessons_pt and lessons_es are variants of lessons, not collections of their own."""
        assert site_config.base_collections() == ['lessons']
        rules = build_classification_rules(site_config)
        assert {rule.collection for rule in rules} == {'lessons', None}

    def test_source_collection(self):
        assert ClassificationRule('_lessons_pt', 'lessons', 'pt').source_collection == 'lessons_pt'
        assert ClassificationRule('pt/', None, 'pt').source_collection is None

    def test_no_collections_configured(self):
        """Without collections only language directories classify."""
        config = SiteConfig.from_dict({'languages': ['en', 'pt']})
        rules = build_classification_rules(config)
        assert classify('_lessons/hello.md', rules) == (None, 'en')
        assert classify('pt/about.md', rules) == (None, 'pt')

    def test_longer_collection_prefix_wins(self):
        """A collection whose name extends another is matched before the shorter one."""
        config = SiteConfig.from_dict({'collections': {'lessons': {}, 'lessons_extra': {}}})
        rules = build_classification_rules(config)
        assert classify('_lessons_extra/a.md', rules) == ('lessons_extra', 'en')
        assert classify('_lessons/a.md', rules) == ('lessons', 'en')


class TestClassify:
    """Test cases for classify()."""

    @pytest.mark.parametrize('relative_path, expected', [
        ('_lessons_pt/variaveis.md', ('lessons', 'pt')),
        ('_lessons_es/hola-mundo.md', ('lessons', 'es')),
        ('_lessons/hello-world.md', ('lessons', 'en')),
        ('pt/about.md', (None, 'pt')),
        ('es/index.md', (None, 'es')),
        ('about.md', (None, 'en')),
        ('index.md', (None, 'en')),
    ])
    def test_cascade(self, site_config, relative_path, expected):
        rules = build_classification_rules(site_config)
        assert classify(relative_path, rules, site_config.default_lang) == expected

    def test_localized_collection_never_falls_through(self, site_config):
        """A Portuguese lesson also starts with '_lessons' but must classify as Portuguese."""
        rules = build_classification_rules(site_config)
        collection, language = classify('_lessons_pt/ola-mundo.md', rules)
        assert (collection, language) == ('lessons', 'pt')

    def test_prefix_semantics_are_plain_string_tests(self, site_config):
        """The cascade compares string prefixes, not path segments."""
        rules = build_classification_rules(site_config)
        assert classify('pt-notes/page.md', rules) == (None, 'en')
        assert classify('_lessons_ptx/page.md', rules) == ('lessons', 'pt')


class TestLessonTranslationTable:
    """Test cases for the slug translation table."""

    def test_reverse_lookup(self, translation_table):
        assert translation_table.canonical('pt', 'variaveis') == 'variables'
        assert translation_table.canonical('es', 'hola-mundo') == 'hello-world'
        assert translation_table.canonical('es', 'tipos-de-dados') is None

    def test_forward_lookup(self, translation_table):
        assert translation_table.localized('pt', 'data-types') == 'tipos-de-dados'
        assert translation_table.localized('es', 'data-types') is None
        assert translation_table.localized('fr', 'hello-world') is None

    def test_first_definition_wins(self):
        table = LessonTranslationTable({'pt': {'ola': 'hello-world', 'ola-mundo': 'hello-world'}})
        assert table.localized('pt', 'hello-world') == 'ola'
        assert table.canonical('pt', 'ola-mundo') == 'hello-world'

    def test_from_config_override(self):
        config = SiteConfig.from_dict({
            'languages': ['en', 'fr'],
            'lesson_slugs': {'fr': {'bonjour': 'hello-world'}},
        })
        table = LessonTranslationTable.from_config(config)
        assert table.languages() == ['fr']
        assert table.canonical('fr', 'bonjour') == 'hello-world'
        assert table.canonical('pt', 'ola-mundo') is None


class TestOutputPath:
    """Test cases for output_path() and get_file_path()."""

    @pytest.mark.parametrize('relative_path, collection, language, url', [
        ('_lessons/hello-world.md', 'lessons', 'en', '/lessons/hello-world/'),
        ('_lessons_pt/variaveis.md', 'lessons', 'pt', '/pt/lessons/variaveis/'),
        ('_lessons_es/hola-mundo.md', 'lessons', 'es', '/es/lessons/hola-mundo/'),
        ('about.md', None, 'en', '/about/'),
        ('pt/about.md', None, 'pt', '/pt/about/'),
        ('index.md', None, 'en', '/'),
        ('es/index.md', None, 'es', '/es/'),
        ('lessons/index.md', None, 'en', '/lessons/'),
        ('pt/lessons/index.md', None, 'pt', '/pt/lessons/'),
        ('guides/setup.md', None, 'en', '/guides/setup/'),
    ])
    def test_output_path(self, site_config, relative_path, collection, language, url):
        assert output_path(make_file(relative_path, collection, language), site_config) == url

    def test_file_path(self, site_config):
        assert get_file_path(make_file('_lessons_pt/variaveis.md', 'lessons', 'pt'), site_config) == \
            'pt/lessons/variaveis/index.html'
        assert get_file_path(make_file('about.md'), site_config) == 'about/index.html'
        assert get_file_path(make_file('index.md'), site_config) == 'index.html'

    @pytest.mark.parametrize('relative_path, collection, language', [
        ('_lessons/hello-world.md', 'lessons', 'en'),
        ('_lessons_es/hola-mundo.md', 'lessons', 'es'),
        ('about.md', None, 'en'),
        ('pt/index.md', None, 'pt'),
        ('index.md', None, 'en'),
    ])
    def test_url_and_file_path_agree(self, site_config, relative_path, collection, language):
        """The URL and the on-disk path differ only by the trailing index.html."""
        content_file = make_file(relative_path, collection, language)
        file_path = get_file_path(content_file, site_config)
        assert file_path.endswith('index.html')
        assert '/' + file_path[:-len('index.html')] == output_path(content_file, site_config)


class TestLanguageUrls:
    """Test cases for language_urls()."""

    def test_portuguese_lesson_maps_through_canonical_slug(self, site_config, translation_table):
        urls = language_urls(make_file('_lessons_pt/variaveis.md', 'lessons', 'pt'), site_config, translation_table)
        assert urls == {
            'en': '/lessons/variables/',
            'pt': '/pt/lessons/variaveis/',
            'es': '/es/lessons/variables/',
        }

    def test_english_lesson(self, site_config, translation_table):
        urls = language_urls(make_file('_lessons/hello-world.md', 'lessons', 'en'), site_config, translation_table)
        assert urls == {
            'en': '/lessons/hello-world/',
            'pt': '/pt/lessons/ola-mundo/',
            'es': '/es/lessons/hola-mundo/',
        }

    def test_missing_translation_falls_back_to_lesson_index(self, site_config, translation_table):
        urls = language_urls(make_file('_lessons/data-types.md', 'lessons', 'en'), site_config, translation_table)
        assert urls['pt'] == '/pt/lessons/tipos-de-dados/'
        assert urls['es'] == '/es/lessons/'

    def test_unknown_localized_slug_falls_back_everywhere(self, site_config, translation_table):
        """Without a canonical slug, only the page's own language links to the page itself."""
        urls = language_urls(make_file('_lessons_pt/ownership.md', 'lessons', 'pt'), site_config, translation_table)
        assert urls == {
            'en': '/lessons/',
            'pt': '/pt/lessons/ownership/',
            'es': '/es/lessons/',
        }

    def test_standalone_page_is_positional(self, site_config, translation_table):
        urls = language_urls(make_file('about.md'), site_config, translation_table)
        assert urls == {'en': '/about/', 'pt': '/pt/about/', 'es': '/es/about/'}

    def test_localized_standalone_page(self, site_config, translation_table):
        urls = language_urls(make_file('pt/about.md', None, 'pt'), site_config, translation_table)
        assert urls == {'en': '/about/', 'pt': '/pt/about/', 'es': '/es/about/'}

    def test_root_index_maps_to_language_roots(self, site_config, translation_table):
        urls = language_urls(make_file('index.md'), site_config, translation_table)
        assert urls == {'en': '/', 'pt': '/pt/', 'es': '/es/'}

    @pytest.mark.parametrize('relative_path, collection, language', [
        ('_lessons/hello-world.md', 'lessons', 'en'),
        ('_lessons/data-types.md', 'lessons', 'en'),
        ('_lessons_pt/variaveis.md', 'lessons', 'pt'),
        ('_lessons_pt/unknown.md', 'lessons', 'pt'),
        ('_lessons_es/hola-mundo.md', 'lessons', 'es'),
        ('about.md', None, 'en'),
        ('es/index.md', None, 'es'),
    ])
    def test_urls_are_never_empty_and_stay_in_language_subtree(self, site_config, translation_table,
                                                              relative_path, collection, language):
        urls = language_urls(make_file(relative_path, collection, language), site_config, translation_table)
        assert set(urls) == {'en', 'pt', 'es'}
        for lang, url in urls.items():
            assert url
            assert url.startswith('/') and url.endswith('/')
            if lang == 'en':
                assert not url.startswith(('/pt/', '/es/'))
            else:
                assert url.startswith(f'/{lang}/')

    def test_unpublished_targets_fall_back_to_nearest_published_page(self, site_config, translation_table):
        published = {'/', '/pt/', '/es/', '/lessons/data-types/', '/pt/lessons/', '/es/lessons/'}
        urls = language_urls(make_file('_lessons/data-types.md', 'lessons', 'en'), site_config, translation_table,
                             published)
        assert urls == {
            'en': '/lessons/data-types/',
            'pt': '/pt/lessons/',
            'es': '/es/lessons/',
        }

    def test_unpublished_standalone_target_falls_back_to_language_root(self, site_config, translation_table):
        published = {'/', '/pt/', '/es/', '/guides/setup/', '/pt/guides/setup/'}
        urls = language_urls(make_file('guides/setup.md'), site_config, translation_table, published)
        assert urls == {'en': '/guides/setup/', 'pt': '/pt/guides/setup/', 'es': '/es/'}

    def test_nearest_published(self):
        published = {'/es/', '/es/guides/'}
        assert nearest_published('/es/guides/setup/', published, '/es/') == '/es/guides/'
        assert nearest_published('/es/about/', published, '/es/') == '/es/'
        assert nearest_published('/about/', set(), '/') == '/'
