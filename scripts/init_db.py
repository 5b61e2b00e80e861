#!/usr/bin/env python3
"""
Создать таблицы users и payments (если их нет).
Запуск из корня проекта: python -m scripts.init_db
или: PYTHONPATH=. python scripts/init_db.py
"""
import os
import sys

# корень проекта в PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.base import Base
from app.db.session import engine
from app.models.payment import Payment  # noqa: F401
from app.models.user import User  # noqa: F401


def main():
    Base.metadata.create_all(bind=engine)
    print(f"Таблицы: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
