import pathlib
import re
import sys
from setuptools import setup, find_packages

assert sys.version_info >= (3, 8, 0), "monetmapi requires Python 3.8+"

THIS_DIR = pathlib.Path(__file__).parent


def get_version() -> str:
    init_file = THIS_DIR / "src" / "monetmapi" / "__init__.py"
    version_re = re.compile(r".*__version__\s=\s+[\'\"](?P<version>.*?)[\'\"]")
    with open(init_file, "r", encoding="utf8") as init_fd:
        match = version_re.search(init_fd.read())
        if match:
            version = match.group("version")
        else:
            raise RuntimeError(f"Cannot find __version__ in {init_file}")
        return version


def get_long_description() -> str:
    readme_file = THIS_DIR / "README.md"
    with open(readme_file, encoding="utf8") as fd:
        readme = fd.read()
    return readme


def get_requirements(requirements_file: str) -> str:
    with open(requirements_file, encoding="utf8") as fd:
        requirements = []
        for line in fd.read().split("\n"):
            line = line.strip()
            if line and not line.startswith("#"):
                requirements.append(line)
        return requirements


if __name__ == "__main__":
    setup(
        name="monetmapi",
        description="monetmapi is an asyncio client for the MonetDB MAPI wire protocol",
        long_description=get_long_description(),
        long_description_content_type="text/markdown",
        license="MIT license",
        version=get_version(),
        python_requires=">=3.8",
        install_requires=get_requirements(THIS_DIR / "requirements.txt"),
        package_dir={"": "src"},
        packages=find_packages("src"),
        extras_require={
            "develop": get_requirements(THIS_DIR / "requirements.dev.txt"),
        },
        classifiers=[
            "Development Status :: 3 - Alpha",
            "Intended Audience :: Developers",
            "Programming Language :: Python :: 3",
            "Programming Language :: Python :: Implementation :: CPython",
            "Topic :: Database",
        ],
        keywords=["monetdb", "mapi", "asyncio", "database"],
    )
