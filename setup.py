from setuptools import setup, find_packages

setup(
    name="field-validation-lib",
    version="0.1.0",
    description="Form field validation with rule pipelines, translated messages and a validation summary",
    author="Jude Payne",
    packages=find_packages(exclude=["tests*"]),
    package_data={
        'field_validation': ['local-config.yaml', 'rule-catalog.yaml', 'locales/*.yaml'],
    },
    include_package_data=True,
    install_requires=[
        'pyyaml>=6.0',
        'jsonschema>=4.17.0',
        'requests>=2.28.0',
    ],
    extras_require={
        'test': ['pytest'],
    },
    python_requires='>=3.9',
)
