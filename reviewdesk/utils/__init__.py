# reviewdesk/utils/__init__.py
