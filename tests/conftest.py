"""Test configuration and fixtures for sitewright tests."""

import pytest
import tempfile
import shutil
import os
from pathlib import Path

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_file():
    """Write a file (creating parent directories) and return its path as a string."""
    def _make_file(root, relative_path, content=''):
        path = Path(root) / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding='utf-8')
        return str(path)
    return _make_file


@pytest.fixture
def site_dir(temp_dir, make_file):
    """Create a small site source tree."""
    source = os.path.join(temp_dir, 'site')
    os.makedirs(source)

    make_file(source, '_layouts/default.html', """<html>
<head><title>{{ page.title }}</title></head>
<body>{{ content }}</body>
</html>
""")
    make_file(source, '_layouts/post.html', """---
layout: default
---
<article>{{ content }}</article>
""")
    make_file(source, '_includes/footer.html', '<footer>{{ site.title }}</footer>')
    make_file(source, '_data/authors.yml', 'alice:\n  name: Alice\n')
    make_file(source, '_posts/2024-01-15-hello.md', """---
title: Hello
layout: post
---
Hello **world**.
""")
    make_file(source, 'index.html', """---
title: Home
layout: default
---
<h1>{{ site.title }}</h1>
{% include "footer.html" %}
""")
    make_file(source, 'about.md', """---
title: About
permalink: /custom/about-us/
---
About us.
""")
    make_file(source, 'assets/css/style.css', 'body { color: red; }\n')
    make_file(source, '_config.yml', 'title: Test Site\n')
    return source
