from setuptools import setup, find_packages

setup(
    name='pipefilter',
    version='0.1.0',
    description='Filter editor buffer regions through external shell commands',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'toml>=0.10.2',
        'chardet>=5.0.0',
        'wcwidth>=0.2.6',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    include_package_data=True,
    package_data={'pipefilter': ['config.toml']},
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: GNU General Public License v3 (GPLv3)',
        'Programming Language :: Python :: 3.11',
    ],
    python_requires='>=3.11',
    license='GPLv3',
)
