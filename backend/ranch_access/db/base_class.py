from sqlalchemy.orm import declarative_base

# Baseクラスを作成（監査ログなどのリレーショナルテーブル用）
Base = declarative_base()
