from pathlib import Path
import re

from setuptools import setup


ROOT = Path(__file__).parent


def read_version() -> str:
    """Read ``__version__`` from the package without importing it."""
    text = (ROOT / "starfire" / "__init__.py").read_text(encoding="utf-8")
    match = re.search(r'^__version__ = "([^"]+)"', text, re.MULTILINE)
    if not match:
        raise RuntimeError("unable to find __version__")
    return match.group(1)


setup(
    name="starfire",
    version=read_version(),
    description="Claim creator fees and allocate them across burn, buyback, holder rewards and locked liquidity",
    python_requires=">=3.11",
    packages=["starfire"],
    install_requires=[
        "aiohttp>=3.9",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "solana>=0.30,<0.40",
        "solders>=0.18",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["starfire=starfire.main:main"],
    },
)
