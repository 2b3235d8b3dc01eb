from fastapi import HTTPException, status

class ResourceNotFoundException(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )

class ProductNotFoundException(ResourceNotFoundException):
    def __init__(self, product_id: object):
        self.product_id = product_id
        super().__init__(detail=f"Product not found with id: {product_id}")

class CategoryNotFoundException(ResourceNotFoundException):
    def __init__(self, category_id: object):
        self.category_id = category_id
        super().__init__(detail=f"Category not found with id: {category_id}")

class DuplicateResourceException(HTTPException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

class InvalidSpecificationValueException(HTTPException):
    def __init__(self, attribute_name: str, value: object, data_type: str):
        self.attribute_name = attribute_name
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Value {value!r} is not a valid {data_type} for attribute '{attribute_name}'",
        )
