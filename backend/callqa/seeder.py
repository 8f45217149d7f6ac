from sqlalchemy.exc import SQLAlchemyError
from .database import SessionLocal
from .models import AlertSettings, Company, Criterion, User
from .criteria import get_or_create_category
import logging

logger = logging.getLogger(__name__)

DEMO_COMPANY = "Demo Company"

# (name, description, weight, category); category None means the criterion applies to every agent
DEFAULT_CRITERIA = [
    ("Saudacao/Abertura", "Cumprimento e abertura da chamada", 1, None),
    ("Identificacao da necessidade", "Identificacao das necessidades do cliente", 2, None),
    ("Escuta ativa", "Demonstracao de escuta ativa", 1, None),
    ("Apresentacao de solucao", "Apresentacao clara de solucoes", 3, None),
    ("Tratamento de objecoes", "Gestao eficaz das objecoes do cliente", 2, None),
    ("Clareza na comunicacao", "Comunicacao clara e compreensivel", 1, None),
    ("Tom profissional", "Manutencao de tom profissional", 1, None),
    ("Proximo passo definido", "Definicao clara do proximo passo", 3, None),
    ("Fecho da chamada", "Encerramento profissional da chamada", 1, None),
    ("Ausencia de palavras de risco", "Evitar palavras de risco ou gatilhos", 2, None),
    ("Resolucao no primeiro contacto", "Capacidade de resolver o problema na primeira chamada", 3, "Suporte"),
    ("Empatia e compreensao", "Demonstracao de empatia pela situacao do cliente", 2, "Suporte"),
    ("Conhecimento tecnico", "Demonstracao de conhecimento do produto ou servico", 2, "Suporte"),
    ("Proposta comercial", "Apresentacao de uma proposta com valor para o cliente", 2, "Comercial"),
]

DEMO_USERS = [
    {"username": "admin", "display_name": "System Admin", "role": "admin_manager", "category": None},
    {"username": "ana.suporte", "display_name": "Ana Silva", "role": "agent", "category": "Suporte",
     "phone_number": "+351910000001"},
    {"username": "rui.comercial", "display_name": "Rui Costa", "role": "agent", "category": "Comercial",
     "phone_number": "+351910000002"},
    {"username": "joao.misto", "display_name": "Joao Pereira", "role": "agent", "category": "Suporte",
     "extra_categories": ["Comercial"], "phone_number": "+351910000003"},
]

def seed_demo_data(session_factory=SessionLocal):
    """Seed a demo company with categories, agents, criteria and alert settings"""
    db = session_factory()
    try:
        # Check if demo data already exists
        if db.query(Company).filter(Company.name == DEMO_COMPANY).first():
            logger.info("Demo data already exists, skipping seeding")
            return

        demo_company = Company(name=DEMO_COMPANY)
        db.add(demo_company)
        db.flush()

        for user_data in DEMO_USERS:
            category = get_or_create_category(db, demo_company.id, user_data["category"] or "all")
            user = User(
                company_id=demo_company.id,
                username=user_data["username"],
                display_name=user_data["display_name"],
                phone_number=user_data.get("phone_number"),
                role=user_data["role"],
                custom_role_name=user_data["category"],
                category_id=category.id if category else None,
            )
            user.categories = [
                get_or_create_category(db, demo_company.id, name) for name in user_data.get("extra_categories", [])
            ]
            db.add(user)

        for name, description, weight, category_name in DEFAULT_CRITERIA:
            category = get_or_create_category(db, demo_company.id, category_name or "all")
            db.add(Criterion(
                company_id=demo_company.id,
                name=name,
                description=description,
                weight=weight,
                category_id=category.id if category else None,
            ))

        db.add(AlertSettings(company_id=demo_company.id))

        db.commit()
        logger.info(f"Demo data seeded successfully (company {demo_company.id})")

    except SQLAlchemyError as e:
        logger.error(f"Failed to seed demo data: {e}")
        db.rollback()
    finally:
        db.close()
