from setuptools import find_namespace_packages, setup

# Base requirements for all platforms
install_requires = [
  "loguru>=0.7.2",
  "pydantic>=2.9.2",
]

extras_require = {
  "test": [
    "pytest>=8.0",
    "anyio>=4.4",
  ],
}

setup(
  name="handoff",
  version="0.1.0",
  description="Hand a count-prefixed integer array between processes over a pipe, a FIFO or shared memory",
  package_dir={"": "src"},
  packages=find_namespace_packages(where="src", include=["handoff", "handoff.*"], exclude=["*.tests", "*.tests.*"]),
  python_requires=">=3.11",
  install_requires=install_requires,
  extras_require=extras_require,
  entry_points={"console_scripts": ["handoff = handoff.main:main"]},
)
