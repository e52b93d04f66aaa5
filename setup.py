from setuptools import setup

exec(compile(open('pytmle/version.py').read(),
             'pytmle/version.py', 'exec'))


with open("README.md") as f:
    descript = f.read()


setup(name='pytmle',
      version=__version__,
      description='Targeted minimum loss-based estimation of causal effects',
      keywords='causal-inference TMLE targeted-learning average-treatment-effect interaction influence-curve',
      packages=['pytmle',
                'pytmle.calc',
                'pytmle.learners',
                'pytmle.datasets'],
      include_package_data=True,
      license='MIT',
      classifiers=['Programming Language :: Python :: 3.8',
                   'Programming Language :: Python :: 3.9',
                   'Programming Language :: Python :: 3.10',
                   'Programming Language :: Python :: 3.11',
                   'Programming Language :: Python :: 3.12'],
      install_requires=['pandas>=1.0',
                        'numpy',
                        'statsmodels>=0.12.0',
                        'scipy',
                        'scikit-learn>=1.2'],
      extras_require={"test": ["pytest"], },
      long_description=descript,
      long_description_content_type="text/markdown",
      )
