"""CLI package setup.

Installs only the `opsdesk` client, for machines that talk to a remote
server. The root project already ships the same package and console script,
so install one or the other, never both.
"""

from setuptools import setup, find_packages

setup(
    name="opsdesk-cli",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "click>=8.0",
        "httpx>=0.24",
        "rich>=13.0",
    ],
    entry_points={
        "console_scripts": [
            "opsdesk=opsdesk:cli",
        ],
    },
    python_requires=">=3.9",
)
