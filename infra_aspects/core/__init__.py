# infra_aspects/core/__init__.py
