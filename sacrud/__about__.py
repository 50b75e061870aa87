__version__ = "0.3.0"
__description__ = "sacrud : declarative CRUD controllers for SQLAlchemy"
