import os
import shutil
import logging
import time
import posixpath
from datetime import datetime, date, timezone
from email.utils import formatdate
from fnmatch import fnmatch
from xml.sax.saxutils import escape

from .content import CONTENT_EXTENSIONS, ContentFile, ContentResolver, FrontMatter
from .errors import BuildError, ContentIOError, PathError, PolystaticError
from .localization import LessonTranslationTable
from .settings import SiteSettings
from .templates import TemplateRenderer

# Matched against every path segment
BUILTIN_EXCLUDES = (
    '.git', '.hg', '.svn', '_site', 'node_modules', 'vendor', 'target',
    '*.lock', 'Gemfile*', 'README.md', 'LICENSE*',
)
# Matched as prefixes of the path relative to the content root
BUILTIN_ROOT_EXCLUDES = ('src/', 'assets/')

SPECIAL_FILES = ('manifest.json', 'sw.js', 'robots.txt', 'sitemap.xml', 'offline.html', 'CNAME')
FEED_ITEM_LIMIT = 20


def is_excluded(relative_path, patterns):
    """
    Check a POSIX path relative to the content root against exclusion patterns.

    Patterns with wildcards are matched with fnmatch against the whole path and
    against every segment. Plain patterns are string prefixes of the path.
    """
    segments = relative_path.split('/')
    for pattern in patterns:
        if any(ch in pattern for ch in '*?['):
            if fnmatch(relative_path, pattern) or any(fnmatch(segment, pattern) for segment in segments):
                return True
        elif relative_path.startswith(pattern):
            return True
    return False


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "Starting site build",
            "Cleaning output directory",
            "Processing content files",
            "Rendering",
            "Generating index pages",
            "Copying static assets",
            "Creating special files",
            "Site build completed in",
            "Total pages generated:",
            "Total lessons generated:",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


class Polystatic:
    def __init__(self, content_dir='.', output_dir='_site', config=None, config_path=None, log_dir=None, verbose=False):
        self.content_dir = os.path.abspath(content_dir)
        self.output_dir = os.path.abspath(output_dir)
        self.log_dir = log_dir
        self.verbose = verbose
        self.pages_generated = 0
        self.lessons_generated = 0
        self.rendered = []  # (url, ContentFile) for every written page
        self.copied_special_files = []

        self.setup_logging()

        if not os.path.isdir(self.content_dir):
            raise PathError("Content directory does not exist", self.content_dir)

        settings_loader = SiteSettings(self.content_dir)
        self.config = config or settings_loader.load_settings(config_path)
        self.config_file = settings_loader.config_file_path or self.config.source_path

        self.table = LessonTranslationTable.from_config(self.config)
        self.resolver = ContentResolver(self.content_dir, self.config, self.table)
        self.renderer = TemplateRenderer.for_site(self.content_dir, self.config, self.table)

    def setup_logging(self):
        """Set up logging configuration."""
        self.logger = logging.getLogger('Polystatic')
        self.logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

        if not self.logger.handlers:
            # Console handler with filter
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG if self.verbose else logging.INFO)
            if not self.verbose:
                console_handler.addFilter(InfoFilter())
            console_formatter = logging.Formatter('%(message)s')
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

            # File handler for all logs
            if self.log_dir:
                os.makedirs(self.log_dir, exist_ok=True)
                log_filename = datetime.now().strftime('polystatic_%Y-%m-%d_%H-%M-%S.log')
                log_filepath = os.path.join(self.log_dir, log_filename)

                file_handler = logging.FileHandler(log_filepath)
                file_handler.setLevel(logging.DEBUG)
                file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
                file_handler.setFormatter(file_formatter)
                self.logger.addHandler(file_handler)

    def _fail(self, stage, error, path=None):
        """Log a stage failure and wrap it in a BuildError."""
        if isinstance(error, BuildError):
            return error
        path = path or getattr(error, 'path', None)
        message = error.message if isinstance(error, PolystaticError) else str(error)
        self.logger.error(f"{stage} failed for {path}: {message}" if path else f"{stage} failed: {message}")
        build_error = BuildError(stage, message, path)
        build_error.__cause__ = error
        return build_error

    def exclusion_patterns(self):
        """User patterns plus the config file and an output directory nested in the content root."""
        patterns = list(self.config.exclude)
        if self.config_file:
            config_rel = os.path.relpath(os.path.abspath(self.config_file), self.content_dir)
            if not config_rel.startswith('..'):
                patterns.append(config_rel.replace(os.sep, '/'))
        output_rel = os.path.relpath(self.output_dir, self.content_dir)
        if not output_rel.startswith('..') and output_rel != '.':
            patterns.append(output_rel.replace(os.sep, '/') + '/')
        return patterns

    def should_exclude(self, relative_path, patterns=None):
        """Decide whether a path relative to the content root is skipped by the walk."""
        if patterns is None:
            patterns = self.exclusion_patterns()
        top, sep, _ = relative_path.partition('/')
        if top.startswith('_'):
            # collection directories only, never root files such as _lessons.md
            if not sep or not any(rule.collection and top.startswith(rule.prefix) for rule in self.resolver.rules):
                return True
        if any(fnmatch(segment, pattern) for segment in relative_path.split('/') for pattern in BUILTIN_EXCLUDES):
            return True
        if any(relative_path.startswith(prefix) for prefix in BUILTIN_ROOT_EXCLUDES):
            return True
        return is_excluded(relative_path, patterns)

    def clean_output_dir(self):
        """Remove any previous output and recreate the output directory."""
        self.logger.info("Cleaning output directory...")
        common = os.path.commonpath([self.content_dir, self.output_dir])
        if common == self.output_dir:
            raise self._fail('clean', PathError("Output directory must not contain the content directory", self.output_dir))
        try:
            if os.path.exists(self.output_dir):
                shutil.rmtree(self.output_dir)
            os.makedirs(self.output_dir, exist_ok=True)
        except (IOError, OSError) as e:
            raise self._fail('clean', ContentIOError(f"Failed to clean output directory: {e}", self.output_dir))

    def collect_content_files(self):
        """Walk the content root and resolve every content file that is not excluded."""
        self.logger.info("Processing content files...")
        patterns = self.exclusion_patterns()
        content_files = []

        for dirpath, dirnames, filenames in os.walk(self.content_dir):
            rel_dir = os.path.relpath(dirpath, self.content_dir).replace(os.sep, '/')
            rel_dir = '' if rel_dir == '.' else rel_dir
            dirnames[:] = sorted(
                d for d in dirnames
                if not self.should_exclude(posixpath.join(rel_dir, d) + '/', patterns)
            )
            for filename in sorted(filenames):
                relative_path = posixpath.join(rel_dir, filename)
                if not filename.lower().endswith(CONTENT_EXTENSIONS):
                    continue
                if self.should_exclude(relative_path, patterns):
                    self.logger.debug(f"Excluded {relative_path}")
                    continue
                try:
                    content_files.append(self.resolver.resolve(os.path.join(dirpath, filename)))
                except PolystaticError as e:
                    raise self._fail('resolve', e, relative_path)

        self.logger.debug(f"Resolved {len(content_files)} content files")
        return content_files

    def _write_page(self, content_file, html):
        file_path = os.path.join(self.output_dir, *content_file.get_file_path(self.config).split('/'))
        url = content_file.output_path(self.config)
        if any(existing_url == url for existing_url, _ in self.rendered):
            self.logger.warning(f"{content_file.relative_path} overwrites an existing page at {url}")
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as output_file:
            output_file.write(html)
        self.rendered.append((url, content_file))
        self.logger.debug(f"Generated HTML: {file_path}")

    def _render_and_write(self, stage, content_file, **extra):
        try:
            html = self.renderer.render_content(content_file, **extra)
            self._write_page(content_file, html)
        except PolystaticError as e:
            raise self._fail(stage, e, content_file.relative_path)
        except (IOError, OSError) as e:
            raise self._fail(stage, ContentIOError(f"Failed to write page: {e}"), content_file.relative_path)

    def is_published(self, content_file):
        """Whether the render stages write this file: false only for ``output: false`` collections."""
        if not content_file.collection:
            return True
        collection_config = self.config.get_collection_config(content_file.source_collection) \
            or self.config.get_collection_config(content_file.collection)
        return collection_config is None or collection_config.output

    def collection_index_files(self, content_files):
        """Listing pages for every language and collection that has no index source file."""
        existing = {cf.output_path(self.config) for cf in content_files if cf.is_index}
        generated = []
        for lang in self.config.get_languages():
            prefix = self.config.language_prefix(lang)
            for name in self.config.base_collections():
                if not self.config.get_collection_config(name).output:
                    continue
                relative_path = f"{prefix}{name}/index.md"
                content_file = ContentFile(
                    path=os.path.join(self.content_dir, *relative_path.split('/')),
                    relative_path=relative_path,
                    front_matter=FrontMatter(title=name.replace('_', ' ').title()),
                    content='',
                    html_content='',
                    collection=None,
                    language=lang,
                )
                if content_file.output_path(self.config) not in existing:
                    self.logger.debug(f"Generating collection index {content_file.output_path(self.config)}")
                    generated.append(content_file)
        return generated

    def published_urls(self, content_files):
        return {cf.output_path(self.config) for cf in content_files if self.is_published(cf)}

    def render_content_files(self, content_files):
        """Render every page except index pages, which belong to the index stage."""
        pages = [cf for cf in content_files if not cf.is_index]
        self.logger.info(f"Rendering {len(pages)} content files...")
        for content_file in pages:
            if not self.is_published(content_file):
                self.logger.debug(f"Skipping {content_file.relative_path}: collection output disabled")
                continue
            self._render_and_write('render', content_file)
            if content_file.collection:
                self.lessons_generated += 1
            else:
                self.pages_generated += 1

    def collection_items(self, content_files, lang):
        """Summaries of each collection's members in one language, sorted by order then slug."""
        items = {name: [] for name in self.config.base_collections()}
        for content_file in content_files:
            if not content_file.collection or content_file.language != lang:
                continue
            extra = content_file.front_matter.extra
            order = extra.get('order', 1000)
            if isinstance(order, bool) or not isinstance(order, (int, float)):
                order = 1000
            items.setdefault(content_file.collection, []).append({
                'title': content_file.front_matter.title,
                'url': content_file.output_path(self.config),
                'slug': content_file.stem,
                'difficulty': content_file.front_matter.difficulty,
                'version': content_file.front_matter.version,
                'order': order,
            })
        for entries in items.values():
            entries.sort(key=lambda item: (item['order'], item['slug']))
        return items

    def generate_index_pages(self, content_files, generated=()):
        """Render the index pages of every language, source and generated, with the collection listings."""
        self.logger.info("Generating index pages...")
        index_files = [cf for cf in content_files if cf.is_index] + list(generated)
        for lang in self.config.get_languages():
            language_indexes = [cf for cf in index_files if cf.language == lang]
            root = '/' + self.config.language_prefix(lang)
            if not any(cf.output_path(self.config) == root for cf in language_indexes):
                self.logger.warning(f"No index page found for language '{lang}'")
            if not language_indexes:
                continue
            listing = self.collection_items(content_files, lang)
            for content_file in language_indexes:
                self._render_and_write('index', content_file, collection_items=listing)
                self.pages_generated += 1

    def copy_static_assets(self):
        """Copy the assets directory and root special files verbatim."""
        self.logger.info("Copying static assets...")
        assets_src = os.path.join(self.content_dir, 'assets')
        try:
            if os.path.isdir(assets_src):
                shutil.copytree(assets_src, os.path.join(self.output_dir, 'assets'))
                self.logger.debug(f"Copied assets from {assets_src}")

            for filename in SPECIAL_FILES:
                src = os.path.join(self.content_dir, filename)
                if os.path.isfile(src):
                    shutil.copy2(src, os.path.join(self.output_dir, filename))
                    self.copied_special_files.append(filename)
        except (IOError, OSError, shutil.Error) as e:
            raise self._fail('copy_assets', ContentIOError(f"Failed to copy static assets: {e}"), assets_src)

    def site_link(self, url):
        """Absolute link for a site URL."""
        return f"{self.config.url or ''}{self.config.baseurl}{url}"

    def create_special_files(self):
        """Write the cache-busting marker, the RSS feed and the sitemap."""
        self.logger.info("Creating special files...")
        try:
            timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
            with open(os.path.join(self.output_dir, '.nojekyll'), 'w', encoding='utf-8') as f:
                f.write(f"# Generated by Polystatic\n# Build time: {timestamp}\n")

            self.generate_feed()
            if 'sitemap.xml' not in self.copied_special_files:
                self.generate_xml_sitemap()
        except (IOError, OSError) as e:
            raise self._fail('special_files', ContentIOError(f"Failed to write special file: {e}"), self.output_dir)

    def _page_date(self, content_file):
        value = content_file.front_matter.extra.get('date')
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        return None

    def generate_feed(self):
        """Generate the RSS feed from default-language collection pages."""
        site_name = self.config.title or 'Polystatic site'
        description = self.config.description or site_name
        site_link = self.site_link('/')
        build_date = formatdate()

        items = [
            (url, cf) for url, cf in self.rendered
            if cf.collection and cf.language == self.config.get_default_lang()
        ][:FEED_ITEM_LIMIT]

        feed_content = f'''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>{escape(site_name)}</title>
    <description>{escape(description.strip())}</description>
    <link>{escape(site_link)}</link>
    <atom:link href="{escape(self.site_link('/feed.xml'))}" rel="self" type="application/rss+xml"/>
    <pubDate>{build_date}</pubDate>
    <lastBuildDate>{build_date}</lastBuildDate>
    <generator>Polystatic</generator>'''

        for url, content_file in items:
            link = escape(self.site_link(url))
            title = escape(content_file.front_matter.title or content_file.stem)
            page_date = self._page_date(content_file)
            pub_date = formatdate(page_date.timestamp()) if page_date else build_date
            feed_content += f'''
    <item>
      <title>{title}</title>
      <link>{link}</link>
      <guid>{link}</guid>
      <pubDate>{pub_date}</pubDate>
    </item>'''

        feed_content += '''
  </channel>
</rss>
'''
        with open(os.path.join(self.output_dir, 'feed.xml'), 'w', encoding='utf-8') as f:
            f.write(feed_content)

    def generate_xml_sitemap(self):
        """Generate XML sitemap."""
        sitemap_content = '''<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
'''
        now = datetime.now()
        for url, content_file in sorted(self.rendered, key=lambda entry: entry[0]):
            sitemap_content += self.format_xml_sitemap_entry(self.site_link(url), self._page_date(content_file) or now)
        sitemap_content += '</urlset>\n'

        with open(os.path.join(self.output_dir, 'sitemap.xml'), 'w', encoding='utf-8') as f:
            f.write(sitemap_content)

    def format_xml_sitemap_entry(self, url, lastmod):
        """Format a single sitemap entry."""
        return f'''<url>
<loc>{escape(url)}</loc>
<lastmod>{lastmod.strftime('%Y-%m-%d')}</lastmod>
</url>
'''

    def build(self):
        """Main build process: clean, resolve, render, index, copy assets, special files."""
        start_time = time.time()
        self.logger.info("Starting site build...")
        self.pages_generated = 0
        self.lessons_generated = 0
        self.rendered = []
        self.copied_special_files = []

        self.clean_output_dir()
        content_files = self.collect_content_files()
        generated = self.collection_index_files(content_files)
        self.renderer.published_urls = self.published_urls(content_files + generated)
        self.render_content_files(content_files)
        self.generate_index_pages(content_files, generated)
        self.copy_static_assets()
        self.create_special_files()

        total_time = time.time() - start_time
        self.logger.info(f"Site build completed in {total_time:.6f} seconds.")
        self.logger.info(f"Total pages generated: {self.pages_generated}")
        self.logger.info(f"Total lessons generated: {self.lessons_generated}")
        return content_files
