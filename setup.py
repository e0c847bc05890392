from setuptools import setup

version = '0.1'

with open("README.md", "r", encoding="utf-8") as f:
    long_descr = f.read()

setup(
    name='pymtc',
    packages=['pymtc'],
    version=version,
    license='Apache 2.0',
    description='Control a MultiTransport playback server over its JSON event port',
    long_description=long_descr,
    long_description_content_type='text/markdown',
    author='johnno',
    author_email='johnno@example.com',
    keywords=['MultiTransport', 'Show Control', 'Media Server'],
    python_requires='>=3.10',
    install_requires=[],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Topic :: Multimedia',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3.10'
    ],
)
