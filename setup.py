"""
Created by Epic at 9/4/20
"""
from setuptools import setup, find_packages
import re

with open('relaycord/values.py') as f:
	version = re.search(r'^version\s*=\s*[\'"]([^\'"]*)[\'"]', f.read(), re.MULTILINE).group(1)

setup(
	name='relaycord',
	version=version,
	packages=find_packages(exclude=("tests", "tests.*", "examples")),
	package_data={"relaycord": ["*.pyi"]},
	url='https://github.com/tag-epic/relaycord',
	license='MIT',
	author='Epic',
	long_description=open("README.md").read(),
	long_description_content_type="text/markdown",
	install_requires=["aiohttp", "ujson"],
	extras_require={"test": ["pytest", "pytest-asyncio"]},
	description='A sharded Discord gateway client that mirrors guild and channel state',
	python_requires='>=3.10',
)
