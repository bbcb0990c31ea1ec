#!/usr/bin/env python
import os
import sys


def main():
    """Ponto de entrada dos comandos de gestão do Django (migrate, rebalance_accounts, ...)."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Não foi possível importar Django. Verifique se está instalado e no seu PYTHONPATH."
        ) from exc

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
