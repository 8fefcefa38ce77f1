from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.params import paginate

from .models import Product


def product_to_dict(p: Product) -> dict:
    return {"id": str(p.id), "sku": p.sku, "name": p.name, "price": str(p.price)}


class ProductListView(APIView):
    """Active products, paginated."""

    def get(self, request):
        qs = Product.objects.filter(is_active=True).order_by("name")
        p, page_obj, page_size = paginate(request, qs)
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [product_to_dict(x) for x in page_obj.object_list],
            }
        )


class ProductDetailView(APIView):
    def get(self, request, pid):
        try:
            p = Product.objects.get(id=pid, is_active=True)
        except Product.DoesNotExist:
            return Response({"detail": "NOT_FOUND"}, status=404)
        return Response(product_to_dict(p))
