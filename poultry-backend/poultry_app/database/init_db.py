# poultry_app/database/init_db.py
from poultry_app.database.db import Base, engine
from poultry_app.models.cnn_model import CnnModel  # noqa: F401
from poultry_app.models.image import Image  # noqa: F401
from poultry_app.models.diagnosis import Diagnosis  # noqa: F401


def create_tables(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def main():
    print("Creating tables...")
    create_tables()
    print("Done.")

if __name__ == "__main__":
    main()
