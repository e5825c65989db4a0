import os
import sys
import django
import random
from decimal import Decimal
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campus_marketplace.settings')
django.setup()

from core.models import (
    User, Category, Listing, Chat, Message, Transaction, Pickup, Review
)

fake = Faker('en_IN')

CATEGORY_TREE = {
    'Academic Books': ['Engineering', 'Medical', 'Management', 'Competitive Exams'],
    'Electronics': ['Laptops', 'Calculators', 'Headphones', 'Mobile Accessories'],
    'Stationery': ['Notebooks', 'Drawing Instruments'],
    'Lab Equipment': ['Lab Coats', 'Chemistry Kits', 'Electronics Kits'],
    'Furniture': ['Study Tables', 'Chairs', 'Storage'],
    'Sports & Fitness': ['Cricket', 'Badminton', 'Gym Equipment'],
    'Fashion': ['Ethnic Wear', 'Footwear'],
    'Services': ['Tutoring', 'Assignment Help', 'Repairs'],
}

COLLEGE_DOMAINS = ['iitb.ac.in', 'bits-pilani.ac.in', 'du.ac.in', 'vit.ac.in']

DEPARTMENTS = [
    'Computer Science', 'Electrical Engineering', 'Mechanical Engineering',
    'Chemistry', 'Physics', 'Economics', 'Design',
]


def create_categories():
    print("Creating categories...")
    leaves = []

    for parent_name, children in CATEGORY_TREE.items():
        parent, _ = Category.objects.get_or_create(name=parent_name, parent=None)
        for child_name in children:
            child, _ = Category.objects.get_or_create(name=child_name, parent=parent)
            leaves.append(child)

    print(f"Created {Category.objects.count()} categories.")
    return leaves


def create_users(num_users=20):
    print(f"Creating {num_users} users and one admin...")

    users = []
    for _ in range(num_users):
        name = fake.name()
        username = fake.unique.user_name()[:30]
        # Most accounts use a college address and are verified on sign-up
        if random.random() < 0.8:
            email = f"{username}@{random.choice(COLLEGE_DOMAINS)}"
            verified = True
        else:
            email = fake.unique.email()
            verified = False

        user = User.objects.create_user(
            username=username,
            email=email,
            password='password123',
            name=name,
            department=random.choice(DEPARTMENTS),
            year=random.choice(['1st', '2nd', '3rd', '4th']),
            bio=fake.sentence(),
            is_verified=verified,
        )
        users.append(user)

    admin = User.objects.create_user(
        username='admin',
        email='admin@campus.example',
        password='admin12345',
        name='Marketplace Admin',
        role='admin',
        is_staff=True,
        is_verified=True,
    )

    print(f"Created {len(users)} users.")
    return users, admin


def create_listings(users, categories):
    print("Creating listings...")
    listings = []

    sellers = [u for u in users if u.is_verified]
    for seller in sellers:
        # Each seller lists 1-3 items
        for _ in range(random.randint(1, 3)):
            category = random.choice(categories)
            listing = Listing.objects.create(
                seller=seller,
                title=f"{random.choice(['Used', 'Like new', 'Barely used', 'Old'])} {category.name}",
                description=fake.paragraph(),
                price=Decimal(random.uniform(50.0, 5000.0)).quantize(Decimal('0.01')),
                category=category,
                listing_type='service' if category.parent.name == 'Services' else 'product',
                images=[f"https://picsum.photos/seed/{fake.uuid4()[:8]}/600/400.jpg"],
            )
            listings.append(listing)

    print(f"Created {len(listings)} listings.")
    return listings


def create_chats(users, listings):
    print("Creating chats and messages...")
    chats = []

    for listing in random.sample(listings, min(len(listings), 15)):
        buyer = random.choice([u for u in users if u != listing.seller])
        chat, _ = Chat.objects.get_or_create(listing=listing, buyer=buyer, seller=listing.seller)
        for i in range(random.randint(1, 5)):
            Message.objects.create(
                chat=chat,
                sender=buyer if i % 2 == 0 else listing.seller,
                text=fake.sentence(),
            )
        chats.append(chat)

    print(f"Created {len(chats)} chats.")
    return chats


def create_transactions(chats):
    print("Creating transactions...")
    completed = []

    for chat in chats:
        outcome = random.choice(['initiated', 'paid', 'completed', 'cancelled'])
        listing = chat.listing

        transaction = Transaction.objects.create(
            buyer=chat.buyer,
            seller=chat.seller,
            listing=listing,
            amount=listing.price,
            gateway_order_id=f"order_{fake.hexify('^^^^^^^^^^^^^^')}",
        )
        listing.set_active(False)

        if outcome == 'cancelled':
            transaction.cancel()
            listing.set_active(True)
            continue

        if outcome in ('paid', 'completed'):
            transaction.mark_paid(f"pay_{fake.hexify('^^^^^^^^^^^^^^')}")
            pickup = Pickup.objects.create(transaction=transaction)
            if outcome == 'completed':
                pickup.confirm()
                completed.append(transaction)

    print(f"Created {len(chats)} transactions ({len(completed)} completed).")
    return completed


def create_reviews(transactions):
    print("Creating reviews...")
    reviews = []

    for transaction in transactions:
        # 70% chance of leaving a review
        if random.random() < 0.7:
            review = Review.objects.create(
                transaction=transaction,
                reviewer=transaction.buyer,
                reviewee=transaction.seller,
                rating=random.randint(3, 5),
                comment=fake.sentence()
            )
            reviews.append(review)

    print(f"Created {len(reviews)} reviews.")
    return reviews


def main():
    print("Starting database population...")

    categories = create_categories()
    users, _admin = create_users(num_users=20)
    listings = create_listings(users, categories)
    chats = create_chats(users, listings)
    completed = create_transactions(chats)
    create_reviews(completed)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
