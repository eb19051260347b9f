from common.exceptions import NotFoundError


def get_owned_object(model, owner, pk, queryset=None):
    """Fetch ``model`` by primary key scoped to ``owner`` or raise NotFoundError."""
    qs = queryset if queryset is not None else model.objects.all()
    try:
        return qs.get(pk=pk, owner=owner)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(
            f"{model._meta.verbose_name.title()} not found",
            details={'id': pk},
        )
