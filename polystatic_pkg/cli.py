#!/usr/bin/env python3
"""
Command-line interface for Polystatic - multilingual static site generator.
"""

import os
import sys
import argparse
import shutil
from typing import List, Optional

from . import __version__
from .core import Polystatic
from .settings import SiteSettings
from .templates import PACKAGE_LAYOUTS_DIR

SAMPLE_TRANSLATIONS = """en:
  site_title: "My Multilingual Site"
  languages:
    en: "English"
    pt: "Português"
    es: "Español"
  lesson:
    previous: "Previous"
    next: "Next"

pt:
  site_title: "Meu Site Multilíngue"
  languages:
    en: "English"
    pt: "Português"
    es: "Español"
  lesson:
    previous: "Anterior"
    next: "Próximo"

es:
  site_title: "Mi Sitio Multilingüe"
  languages:
    en: "English"
    pt: "Português"
    es: "Español"
  lesson:
    previous: "Anterior"
    next: "Siguiente"
"""

SAMPLE_CONTENT = {
    'index.md': """---
title: "Welcome"
---

Start with the [first lesson](/lessons/hello-world/).
""",
    'pt/index.md': """---
title: "Bem-vindo"
---

Comece pela [primeira lição](/pt/lessons/ola-mundo/).
""",
    'es/index.md': """---
title: "Bienvenido"
---

Empieza con la [primera lección](/es/lessons/hola-mundo/).
""",
    'about.md': """---
title: "About"
---

This site was built with **Polystatic**.
""",
    '_lessons/hello-world.md': """---
title: "Hello, World!"
difficulty: beginner
order: 1
---

```rust
fn main() {
    println!("Hello, world!");
}
```
""",
    '_lessons_pt/ola-mundo.md': """---
title: "Olá, Mundo!"
difficulty: iniciante
order: 1
---

```rust
fn main() {
    println!("Olá, mundo!");
}
```
""",
    '_lessons_es/hola-mundo.md': """---
title: "¡Hola, Mundo!"
difficulty: principiante
order: 1
---

```rust
fn main() {
    println!("¡Hola, mundo!");
}
```
""",
    'lessons/index.md': """---
title: "Lessons"
---
""",
    'pt/lessons/index.md': """---
title: "Lições"
---
""",
    'es/lessons/index.md': """---
title: "Lecciones"
---
""",
    '_data/translations.yml': SAMPLE_TRANSLATIONS,
    'assets/css/style.css': "body { font-family: sans-serif; max-width: 48rem; margin: 0 auto; }\n",
}


def create_starter_structure(target_dir: str) -> List[str]:
    """Create layouts, sample lessons in three languages, data files and assets."""
    created = []

    layouts_dir = os.path.join(target_dir, '_layouts')
    os.makedirs(layouts_dir, exist_ok=True)
    for template_file in sorted(os.listdir(PACKAGE_LAYOUTS_DIR)):
        if not template_file.endswith('.html'):
            continue
        dest_path = os.path.join(layouts_dir, template_file)
        if os.path.exists(dest_path):
            print(f"Layout already exists: _layouts/{template_file}")
        else:
            shutil.copy2(os.path.join(PACKAGE_LAYOUTS_DIR, template_file), dest_path)
            created.append(f"_layouts/{template_file}")
            print(f"Created layout: _layouts/{template_file}")

    for relative_path, text in SAMPLE_CONTENT.items():
        dest_path = os.path.join(target_dir, *relative_path.split('/'))
        if os.path.exists(dest_path):
            print(f"File already exists: {relative_path}")
            continue
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)
        with open(dest_path, 'w', encoding='utf-8') as f:
            f.write(text)
        created.append(relative_path)
        print(f"Created: {relative_path}")

    return created


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='polystatic', description='Polystatic - Multilingual Static Site Generator')
    parser.add_argument('-s', '--source', type=str, default='.',
                        help='Source directory')
    parser.add_argument('-d', '--destination', type=str, default='./_site',
                        help='Destination directory')
    parser.add_argument('-c', '--config', type=str,
                        help='Configuration file, relative to the source directory (default: _config.yml)')
    parser.add_argument('--log-dir', type=str, default='logs',
                        help='Directory for the detailed build log')
    parser.add_argument('--no-log-file', action='store_true',
                        help='Do not write a build log file')
    parser.add_argument('--verbose', action='store_true',
                        help='Show every log message on the console')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file and starter site in the source directory')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    # Handle init command
    if args.init:
        try:
            os.makedirs(args.source, exist_ok=True)
            settings_loader = SiteSettings(args.source)
            config_path = settings_loader.create_sample_config(args.init)
            print(f"Created sample configuration file: {config_path}")

            print("\nCreating starter project structure...")
            create_starter_structure(args.source)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print("\nYour new Polystatic site is ready!")
        print("Edit the configuration file and layouts, then run 'polystatic' to build your site.")
        return

    print(f"Source: {args.source}")
    print(f"Destination: {args.destination}")

    log_dir = None if args.no_log_file else os.path.expanduser(args.log_dir)
    destination = os.path.expanduser(args.destination)

    try:
        generator = Polystatic(
            content_dir=args.source,
            output_dir=destination,
            config_path=args.config,
            log_dir=log_dir,
            verbose=args.verbose,
        )
        generator.build()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Site generated successfully!")


if __name__ == '__main__':
    main()
