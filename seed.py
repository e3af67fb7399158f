from loguru import logger
from sqlmodel import Session, select
from app.db.core import engine, init_db
from app.db.schema import Brand, Factory, Rep


# 1. Sales reps. Factories without a rep fall back to round-robin over these.
DEFAULT_REPS = [
    {"name": "Sara Khan", "email": "sara@maryadha.com"},
    {"name": "Bilal Ahmed", "email": "bilal@maryadha.com"},
    {"name": "Ayesha Malik", "email": "ayesha@maryadha.com", "active": False},
]

# 2. Factories, keyed to a rep by name (None = unassigned)
DEFAULT_FACTORIES = [
    {
        "name": "Sialkot Leather Works",
        "location": "Sialkot, PK",
        "minimum_order_quantity": 100,
        "rep": "Sara Khan",
    },
    {
        "name": "Lahore Tannery Co.",
        "location": "Lahore, PK",
        "minimum_order_quantity": 250,
        "rep": None,
    },
]

# 3. Demo brands
DEFAULT_BRANDS = [
    {"name": "Acme Clothing Co.", "email": "buying@acme.com"},
    {"name": "Northwind Apparel", "email": "samples@northwind.com"},
]


def seed_reps(session: Session) -> dict[str, Rep]:
    """Creates reps if they don't exist. Returns a dict map of name -> Rep."""
    logger.info("--- Seeding Reps ---")
    rep_map = {}

    for data in DEFAULT_REPS:
        rep = session.exec(select(Rep).where(Rep.email == data["email"])).first()
        if not rep:
            rep = Rep(**data)
            session.add(rep)
            session.flush()
            logger.info(f"Created rep: {rep.name}")
        elif rep.active != data.get("active", True):
            rep.active = data.get("active", True)
            session.add(rep)
        rep_map[rep.name] = rep

    return rep_map


def seed_factories(session: Session, rep_map: dict[str, Rep]):
    logger.info("--- Seeding Factories ---")

    for data in DEFAULT_FACTORIES:
        rep_name = data["rep"]
        rep_id = rep_map[rep_name].id if rep_name else None

        factory = session.exec(
            select(Factory).where(Factory.name == data["name"])).first()
        if not factory:
            factory = Factory(
                name=data["name"],
                location=data["location"],
                minimum_order_quantity=data["minimum_order_quantity"],
                rep_id=rep_id,
            )
            session.add(factory)
            logger.info(f"Created factory: {factory.name}")
        elif factory.rep_id != rep_id:
            factory.rep_id = rep_id
            session.add(factory)


def seed_brands(session: Session):
    logger.info("--- Seeding Brands ---")

    for data in DEFAULT_BRANDS:
        brand = session.exec(select(Brand).where(Brand.name == data["name"])).first()
        if not brand:
            session.add(Brand(**data))
            logger.info(f"Created brand: {data['name']}")


def main():
    init_db()

    with Session(engine) as session:
        try:
            # 1. Reps
            rep_map = seed_reps(session)

            # 2. Factories
            seed_factories(session, rep_map)

            # 3. Brands
            seed_brands(session)

            session.commit()
            logger.info("Database seeding completed successfully.")

        except Exception as e:
            session.rollback()
            logger.error(f"Seeding failed: {e}")
            raise e


if __name__ == "__main__":
    main()
