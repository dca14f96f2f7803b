# tests/conftest.py
import os
import sys

# Service code is imported as src.services.<service>.app.*, relative to the project root.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
