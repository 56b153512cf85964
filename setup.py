from setuptools import setup

with open("README.md", "r") as fh:
    long_description = fh.read()
with open("semver.txt", "r") as fh:
    semver = fh.read().strip()

setup(
    name='regolith-diagrams',
    py_modules=['regolith', 'regolith_ast'],
    version=semver,
    description='Render regular-expression syntax trees as SVG railroad diagrams.',
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires='>=3.8',
    keywords=['diagrams', 'regex', 'regular expressions', 'railroad diagrams', 'svg'],
    classifiers=[
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
        'Topic :: Software Development :: Documentation',
        'Topic :: Text Processing',
    ],
)
