# reviewdesk/__init__.py
