# reviewdesk/workspaces/__init__.py
