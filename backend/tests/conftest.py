# Standard Library

from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict

# Third-Party Libraries
import pytest
import pytest_asyncio

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# First-Party Libraries (Your project)
from src.main import app
from src.database import get_db_session
from src.products.models import Product
from src.users.models import User, UserRead, UserRole
from src.auth.security import get_password_hash, create_access_token
from src.quotes.models import QuoteCreate, QuoteItemCreate, QuoteRead
from src.quotes.repositories import SQLAlchemyQuoteRepository
from src.quotes.service import QuoteService
from src.products.repositories import SQLAlchemyProductRepository

# URL de base pour la DB en mémoire
TEST_DATABASE_BASE_URL = "sqlite+aiosqlite:///:memory:"

# --- Fixtures de Base ---

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Crée un engine, des tables, et fournit une session DB en mémoire pour chaque test."""
    # Une seule connexion partagée: la base :memory: vit le temps du test
    engine: AsyncEngine = create_async_engine(
        TEST_DATABASE_BASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with TestingSessionLocal() as session:
        yield session

    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def test_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Fournit un AsyncClient httpx qui utilise la session DB de test isolée."""
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    del app.dependency_overrides[get_db_session]

# --- Fixtures Utilisateur et Authentification ---

async def _create_user(db_session: AsyncSession, email: str, role: UserRole, password: str = "testpassword") -> UserRead:
    user = User(
        email=email,
        full_name=email.split("@")[0].title(),
        role=role.value,
        password_hash=get_password_hash(password),
    )
    db_session.add(user)
    await db_session.commit()  # Commit pour obtenir l'ID
    # Schéma détaché de la session: insensible aux rollbacks ultérieurs
    return UserRead.model_validate(user, from_attributes=True)

def _auth_headers(user: UserRead) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}

@pytest_asyncio.fixture(scope="function")
async def sales_user(db_session: AsyncSession) -> UserRead:
    """Commercial: écrit, ne voit que ses devis."""
    return await _create_user(db_session, "sales@example.com", UserRole.SALES)

@pytest_asyncio.fixture(scope="function")
async def other_sales_user(db_session: AsyncSession) -> UserRead:
    return await _create_user(db_session, "sales2@example.com", UserRole.SALES)

@pytest_asyncio.fixture(scope="function")
async def manager_user(db_session: AsyncSession) -> UserRead:
    """Manager: voit tous les devis, peut supprimer."""
    return await _create_user(db_session, "manager@example.com", UserRole.MANAGER)

@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session: AsyncSession) -> UserRead:
    return await _create_user(db_session, "admin@example.com", UserRole.ADMIN, password="adminpassword")

@pytest_asyncio.fixture(scope="function")
async def support_user(db_session: AsyncSession) -> UserRead:
    """Support: lecture seule."""
    return await _create_user(db_session, "support@example.com", UserRole.SUPPORT)

@pytest.fixture
def sales_headers(sales_user: UserRead) -> Dict[str, str]:
    return _auth_headers(sales_user)

@pytest.fixture
def other_sales_headers(other_sales_user: UserRead) -> Dict[str, str]:
    return _auth_headers(other_sales_user)

@pytest.fixture
def manager_headers(manager_user: UserRead) -> Dict[str, str]:
    return _auth_headers(manager_user)

@pytest.fixture
def admin_headers(admin_user: UserRead) -> Dict[str, str]:
    return _auth_headers(admin_user)

@pytest.fixture
def support_headers(support_user: UserRead) -> Dict[str, str]:
    return _auth_headers(support_user)

# --- Fixtures Produits ---

@pytest_asyncio.fixture(scope="function")
async def test_product(db_session: AsyncSession) -> Product:
    """Crée un produit actif du catalogue."""
    product = Product(
        name="Tondeuse thermique",
        sku="TOND-001",
        description="Tondeuse 46cm",
        category="Jardin",
        unit_price=Decimal("100.00"),
        tax_rate=Decimal("5.00"),
        is_active=True,
    )
    db_session.add(product)
    await db_session.commit()
    await db_session.refresh(product)
    return product

# --- Fixtures Devis ---

def make_item(**overrides) -> QuoteItemCreate:
    """Ligne de l'exemple de référence: 2 x 100, remise 10%, taxe 5% => 189.00."""
    data = {
        "product_name": "Tondeuse thermique",
        "quantity": 2,
        "unit_price": Decimal("100"),
        "discount_percent": Decimal("10"),
        "tax_percent": Decimal("5"),
    }
    data.update(overrides)
    return QuoteItemCreate(**data)

def make_quote_payload(**overrides) -> dict:
    """Corps JSON de création d'un devis (deux lignes de référence, port 15 => 393.00)."""
    payload = {
        "title": "Entretien jardin",
        "items": [
            {"product_name": "Tondeuse thermique", "quantity": 2, "unit_price": "100",
             "discount_percent": "10", "tax_percent": "5"},
            {"product_name": "Tondeuse thermique", "quantity": 2, "unit_price": "100",
             "discount_percent": "10", "tax_percent": "5"},
        ],
        "shipping_cost": "15",
        "billing_address": {"name": "Jean Dupont", "city": "Lyon", "country": "FR"},
        "notes": "Livraison le matin",
        "terms_and_conditions": "Paiement à 30 jours",
    }
    payload.update(overrides)
    return payload

@pytest.fixture
def quote_service(db_session: AsyncSession) -> QuoteService:
    return QuoteService(
        quote_repo=SQLAlchemyQuoteRepository(db_session=db_session),
        product_repo=SQLAlchemyProductRepository(db=db_session),
    )

@pytest.fixture
def quote_repo(db_session: AsyncSession) -> SQLAlchemyQuoteRepository:
    return SQLAlchemyQuoteRepository(db_session=db_session)

@pytest.fixture
def create_quote(quote_service: QuoteService) -> Callable:
    """Fabrique de devis en brouillon via le service."""
    async def _create(owner: UserRead, **overrides) -> QuoteRead:
        data = {
            "title": "Entretien jardin",
            "items": [make_item(), make_item()],
            "shipping_cost": Decimal("15"),
        }
        data.update(overrides)
        return await quote_service.create_quote(QuoteCreate(**data), owner)
    return _create

@pytest.fixture
def item_factory() -> Callable[..., QuoteItemCreate]:
    return make_item

@pytest.fixture
def quote_payload() -> Callable[..., dict]:
    return make_quote_payload
