"""Navigator CSRF Meta information.
   Navigator CSRF protects aiohttp applications against cross-site
   request forgery using signed cookie tokens.
"""
__title__ = 'navigator_csrf'
__description__ = (
   'Navigator CSRF protects aiohttp applications against cross-site '
   'request forgery using signed cookie tokens.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/navigator-csrf'
