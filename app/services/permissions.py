from app.db.models import Category, User


def can_edit_category(user: User | None, category: Category) -> bool:
    """Droit d'édition complet d'une catégorie: admin ou auteur."""
    if user is None:
        return False
    if user.is_admin:
        return True
    return category.author_id is not None and category.author_id == user.id
