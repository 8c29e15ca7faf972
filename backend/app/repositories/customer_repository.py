from sqlalchemy.orm import Session

from app.models.customer import Customer


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, email: str) -> Customer | None:
        return self.db.query(Customer).filter(Customer.email == normalize_email(email)).first()

    def get_or_create(self, email: str, name: str | None = None) -> Customer:
        """Find a customer by email or stage a new one in the current transaction."""
        customer = self.get_by_email(email)
        if customer:
            return customer
        customer = Customer(email=normalize_email(email), name=name)
        self.db.add(customer)
        self.db.flush()
        return customer
