# reviewdesk/reviews/__init__.py
