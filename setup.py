from setuptools import find_packages, setup


setup_requires = ("setuptools_scm",)

install_requires = (
    "aiohttp>=3.9,<3.14",
    "apolo-kube-client",
    "neuro-logging",
    "pydantic>=2.5",
    "sentry-sdk",
    "uvloop>=0.19",
    "yarl",
)

tests_require = (
    "aioresponses",
    "pytest",
    "pytest-asyncio",
)

setup(
    name="goofys-injector",
    url="https://github.com/StatCan/goofys-injector",
    use_scm_version={
        "git_describe_command": "git describe --dirty --tags --long --match v*.*.*",
        "fallback_version": "0.0.0",
    },
    package_dir={"": "src"},
    packages=find_packages("src"),
    setup_requires=setup_requires,
    install_requires=install_requires,
    extras_require={"test": tests_require},
    python_requires=">=3.11",
    entry_points={
        "console_scripts": "goofys-injector=goofys_injector.__main__:main"
    },
)
