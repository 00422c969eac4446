from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from rep_stock.db import SessionLocal, engine
from rep_stock.models import Base, Category, Specialty, StockItem, User, UserRole
from rep_stock.security.passwords import hash_password

SPECIALTIES = [
    ('Cardiology', 'Heart and circulation'),
    ('Neurology', 'Brain and nerves'),
    ('Dermatology', 'Skin'),
]

CATEGORIES = [
    ('Samples', '#2563eb'),
    ('Brochures', '#16a34a'),
    ('Promotional', '#f59e0b'),
]


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        for name, description in SPECIALTIES:
            exists = db.execute(select(Specialty.id).where(Specialty.name == name)).scalar_one_or_none()
            if not exists:
                db.add(Specialty(name=name, description=description))

        for name, color in CATEGORIES:
            exists = db.execute(select(Category.id).where(Category.name == name)).scalar_one_or_none()
            if not exists:
                db.add(Category(name=name, color=color))
        db.flush()

        ceo = db.execute(select(User).where(User.username == 'ceo')).scalar_one_or_none()
        if not ceo:
            ceo = User(
                username='ceo',
                password_hash=hash_password('ceopass'),
                name='Chief Executive',
                role=UserRole.CEO,
            )
            db.add(ceo)

        rep = db.execute(select(User).where(User.username == 'rep1')).scalar_one_or_none()
        if not rep:
            cardiology = db.execute(select(Specialty).where(Specialty.name == 'Cardiology')).scalar_one()
            db.add(
                User(
                    username='rep1',
                    password_hash=hash_password('reppass'),
                    name='Field Rep',
                    role=UserRole.MEDICAL_REP,
                    region='North',
                    specialty_id=cardiology.id,
                )
            )
        db.flush()

        item = db.execute(select(StockItem).where(StockItem.name == 'Demo Sample Pack')).scalar_one_or_none()
        if not item:
            samples = db.execute(select(Category).where(Category.name == 'Samples')).scalar_one()
            db.add(
                StockItem(
                    name='Demo Sample Pack',
                    category_id=samples.id,
                    quantity=100,
                    price=1099,
                    expiry=datetime.now(tz=timezone.utc) + timedelta(days=20),
                    unique_number='DEMO-001',
                    created_by=ceo.id,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
